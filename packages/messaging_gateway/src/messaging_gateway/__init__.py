"""
Tenant-scoped messaging gateway.

Sends transactional and marketing messages through a conversational
messaging provider, meters them against purchased quota, keeps template
approval in sync with the provider and threads two-way conversations.
"""
