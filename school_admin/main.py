from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from school_admin.api.v1.academic_years.router import router as academic_years_router
from school_admin.api.v1.auth.router import router as auth_router
from school_admin.api.v1.charges.router import router as charges_router
from school_admin.api.v1.classes.router import router as classes_router
from school_admin.api.v1.fees.router import router as fees_router
from school_admin.api.v1.payments.router import router as payments_router
from school_admin.api.v1.reports.router import router as reports_router
from school_admin.api.v1.students.router import router as students_router
from school_admin.api.v1.transitions.router import router as transitions_router
from school_admin.api.v1.users.router import router as users_router
from school_admin.api.v1.villages.router import router as villages_router
from school_admin.core.config import settings
from school_admin.core.log_config import setup_logging


def create_app() -> FastAPI:
    setup_logging(settings.log_level)
    app = FastAPI(title="School Admin Backend")

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(academic_years_router)
    app.include_router(classes_router)
    app.include_router(villages_router)
    app.include_router(students_router)
    app.include_router(fees_router)
    app.include_router(payments_router)
    app.include_router(charges_router)
    app.include_router(transitions_router)
    app.include_router(reports_router)

    return app


app = create_app()
