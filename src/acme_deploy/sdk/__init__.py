"""
High-level deploy and delete workflows built on ``acme_deploy.cfn``.
"""
