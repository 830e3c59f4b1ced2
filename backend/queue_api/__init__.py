"""
Queue API: ticket issuance, counter calling and statistics over HTTP.

- models/: SQLAlchemy entities
- repositories/: QueueStore implementations (SQL, in-memory)
- services/domain/: QueueEngine and its components
- routers/: FastAPI routers
- core/: lifespan, middlewares, CORS
"""
