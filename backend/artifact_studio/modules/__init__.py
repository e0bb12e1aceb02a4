"""Feature modules live here. Each module may define:

- models.py     (SQLAlchemy models on artifact_studio.core.database.Base)
- schemas.py    (Pydantic request/response models)
- service.py    (business logic)
- repository.py (data access)
- router.py     (FastAPI APIRouter exported as `router`)

Routers are discovered and mounted by core.module_loader; models are imported
first so create_all sees their tables.
"""
