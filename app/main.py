from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.admin.admin_router import router as admin_router
from app.api.v1.analytics.analytics_router import router as analytics_router
from app.api.v1.attendance.router import router as attendance_router
from app.api.v1.auth.router import router as auth_router
from app.api.v1.classes.class_router import router as classes_router
from app.api.v1.departments.department_router import router as departments_router
from app.api.v1.messages.message_router import router as messages_router
from app.api.v1.settings.settings_router import router as settings_router
from app.api.v1.staff_messages.staff_message_router import router as staff_messages_router
from app.api.v1.users.class_router import router as user_classes_router
from app.api.v1.users.staff_router import router as staff_router
from app.api.v1.users.student_router import router as students_router
from app.core.config import settings
from app.core.logging import configure_logging


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="College Attendance API")

    # CORS: allow the dashboard frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(auth_router)
    app.include_router(students_router)
    app.include_router(staff_router)
    app.include_router(user_classes_router)
    app.include_router(attendance_router)
    app.include_router(messages_router)
    app.include_router(staff_messages_router)
    app.include_router(analytics_router)
    app.include_router(admin_router)
    app.include_router(settings_router)
    app.include_router(departments_router)
    app.include_router(classes_router)

    @app.get("/api/health", tags=["health"])
    async def health() -> dict:
        return {"status": "OK", "timestamp": datetime.utcnow().isoformat() + "Z"}

    return app


app = create_app()
