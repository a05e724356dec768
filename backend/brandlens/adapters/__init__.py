"""
Collaborator adapters: answering engines and response parsing
"""
