"""
Tourbook API: Services Layer
============================

What:  Business logic between routes (HTTP) and MongoDB (persistence).
How:   Services take a database handle plus validated request models and
       return plain documents or raise typed exceptions.

Service Inventory:
    - query_pipeline:  query string → MongoDB find (filter/sort/fields/page)
    - factory:         ResourceService, the generic CRUD every resource uses
    - credentials:     bcrypt hashing, JWT issue/verify, reset tokens
    - auth_gateway:    bearer-token authentication and role authorization
    - auth_service:    signup, login and the password flows
    - tour_service:    tour CRUD, aliases, statistics, geospatial reads
    - review_service:  review CRUD and tour rating aggregation
    - user_service:    profile self-service and admin user CRUD
    - mail_base / mail_service:  MailService interface and its SMTP sender
"""
