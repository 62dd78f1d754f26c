"""
CloudFormation building blocks: the stack directory client, change set
rendering, status classification and polling.
"""
