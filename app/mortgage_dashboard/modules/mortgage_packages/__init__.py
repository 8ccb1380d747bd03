"""
Mortgage packages module.

- Dashboard list: search, categorical filters, client loan amount, sort, pagination
- Editor (create/update) and confirmed delete, for editor roles only
- Feature tag derived from the free-text features
"""
