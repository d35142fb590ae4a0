import asyncio
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from clinic_scheduler.core import config
from clinic_scheduler.database import Base, engine, ensure_appointment_schema, ensure_doctor_schema
from clinic_scheduler.models import appointment, doctor  # noqa: F401
from clinic_scheduler.routes import appointment_routes, doctor_routes
from clinic_scheduler.services.doctor_status_service import run_status_worker

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

app = FastAPI(title='Clinic Scheduler API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)

_background_tasks: set[asyncio.Task] = set()


@app.on_event('startup')
async def initialize() -> None:
    config.validate_runtime_config()

    try:
        Base.metadata.create_all(bind=engine)
        ensure_doctor_schema()
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')

    if config.DOCTOR_STATUS_WORKER_ENABLED:
        task = asyncio.create_task(run_status_worker())
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)


@app.on_event('shutdown')
async def stop_workers() -> None:
    for task in list(_background_tasks):
        task.cancel()


@app.get('/')
def root():
    return {'status': 'Clinic Scheduler API Running'}


app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(doctor_routes.router, prefix='/doctors')
