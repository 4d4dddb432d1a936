# Services package init
"""
Tracklane Backend: Services Layer
====================================

What:  Business logic between the routes (HTTP) and the database.
How:   Services receive the session of the caller's transaction, apply the
       business rules and return ORM objects. They never commit.

Service Inventory:
    - SequenceAllocator: per-team issue numbers (single and block)
    - IssueService: issue create / bulk create / read / mutate / delete,
      plus the issue-key rename cascade
    - TeamService, WorkspaceService: team and workspace management
    - issue_keys, change_events, lookups: pure helpers shared by the above
"""
