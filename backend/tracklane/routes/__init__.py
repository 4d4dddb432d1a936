# Routes package init
"""
Tracklane Backend: API Routes Package
========================================

Route Inventory:
    - teams.py:   POST  /api/workspaces
                  GET   /api/workspaces/{slug}/teams
                  POST  /api/workspaces/{slug}/teams
                  PATCH /api/workspaces/{slug}/teams/{team_key}
    - issues.py:  GET   /api/workspaces/{slug}/teams/{team_key}/issues
                  POST  /api/workspaces/{slug}/teams/{team_key}/issues
                  POST  /api/workspaces/{slug}/teams/{team_key}/issues/bulk
                  GET   /api/workspaces/{slug}/issues/{issue_key}
                  PATCH /api/workspaces/{slug}/issues/{issue_key}
                  DELETE /api/workspaces/{slug}/issues/{issue_key}
    - health.py:  GET   /health

Design Principle:
    Routes are thin. Reads use the get_db_session dependency; writes hand a
    closure to run_in_transaction so a transient database failure re-runs the
    whole unit of work, allocation included.
"""
