from app.routers.device import router as device_router
from app.routers.health import router as health_router
from app.routers.products import router as products_router
from app.routers.readings import router as readings_router
from app.routers.shelves import router as shelves_router

__all__ = [
    "device_router",
    "health_router",
    "products_router",
    "readings_router",
    "shelves_router",
]
