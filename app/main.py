import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from utils.config import settings

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Import routes
import models  # noqa: F401  registers every table on Base
from routes import users, restaurants, menu_management, order_management, notifications
from services.change_feed import install_order_events

# Import database
from utils.database import engine, Base

# Create database tables
Base.metadata.create_all(bind=engine)

# Publish committed order writes to websocket subscribers
install_order_events()

# Create FastAPI app
app = FastAPI(
    title="Soufra Back Office API",
    description="Restaurant back office: menus, set menus and live orders",
    version="1.0.0",
    openapi_tags=[
        {"name": "users", "description": "Sign in and account management"},
        {"name": "restaurants", "description": "Restaurant management"},
        {"name": "menu_management", "description": "Categories, menu items and option groups"},
        {"name": "orders", "description": "Orders and status flow"},
        {"name": "notifications", "description": "Live order change feed"},
    ],
    swagger_ui_parameters={
        "persistAuthorization": True,
        "defaultModelsExpandDepth": -1
    }
)


# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, replace with specific origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(users.router)
app.include_router(restaurants.router)
app.include_router(menu_management.router)
app.include_router(order_management.router)
app.include_router(notifications.router)

# Root endpoint
@app.get("/")
async def root():
    return {"message": "Welcome to Soufra Back Office API"}

# Main run block
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
