import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from clinic_backend.core import config
from clinic_backend.database import Base, engine, ensure_appointment_schema, ensure_availability_schema
from clinic_backend.models import appointment, availability, user  # noqa: F401
from clinic_backend.routes import appointment_routes, availability_routes

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

app = FastAPI(title='Clinic Appointment API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {
        'status': 'Clinic Appointment API Running',
        'endpoints': {
            'health': '/health',
            'doctors': '/api/doctors',
            'appointments': '/api/appointments',
        },
    }


@app.get('/health')
def health():
    return {'status': 'ok'}


app.include_router(availability_routes.router, prefix='/api')
app.include_router(appointment_routes.router, prefix='/api')
