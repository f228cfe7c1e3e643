"""
Tourbook API: Route Handlers
============================

Route Inventory:
    - tours.py:    /api/v1/tours/...   (plus nested /tours/{tourId}/reviews)
    - users.py:    /api/v1/users/...   (auth flows, profile, admin)
    - reviews.py:  /api/v1/reviews/...
    - health.py:   /health

Routes stay thin: pull inputs from the request, call one service method,
wrap the result in the response envelope. Authentication and role checks are
dependencies from deps.py and run before the handler body.
"""
