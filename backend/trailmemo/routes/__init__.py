"""
TrailMemo Backend — API Routes Package
========================================

Route Inventory (all under API_PREFIX, default /api/v1, except health):
    - health.py:  GET  /health
    - auth.py:    POST /auth/register, GET|PUT|DELETE /auth/me
    - memos.py:   POST|GET /memos, GET /memos/nearby, GET /memos/search,
                  GET|PUT|DELETE /memos/{memo_id}
    - files.py:   GET  /files/{key}   (local storage backend only)

Routes are thin: parse the request, call a service from the AppContext,
return its response model. params.py holds the shared parsing rules.
"""
