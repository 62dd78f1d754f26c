"""
Deploys CloudFormation stacks through reviewable change sets.
"""
