import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from backend.core import config
from backend.core.errors import InternalError, SchedulingError
from backend.database import Base, SessionLocal, engine, ensure_appointment_schema
from backend.models import appointment, pet, user  # noqa: F401
from backend.routes import admin_routes, appointment_routes, auth_routes
from backend.scheduling.maintenance import SchedulerHandle

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
)

app = FastAPI(title='Veterinary Clinic Appointments API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)

app.state.scheduler = SchedulerHandle(session_factory=SessionLocal)


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    if exc.status_code >= 500:
        logger.error('Internal error on %s: %s', request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={'detail': exc.message})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning('Validation error for %s: %s', request.url.path, exc.errors())
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={'detail': jsonable_errors(exc)},
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception('Database error on %s', request.url.path)
    error = InternalError('Internal server error.')
    content = {'detail': error.message}
    if not config.is_production():
        content['details'] = str(exc)
    return JSONResponse(status_code=error.status_code, content=content)


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {'loc': list(error.get('loc', ())), 'msg': error.get('msg', ''), 'type': error.get('type', '')}
        for error in exc.errors()
    ]


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL.')
        return

    if config.ENABLE_APPOINTMENT_MAINTENANCE_JOB:
        app.state.scheduler.start()
    else:
        logger.info('Appointment maintenance job disabled by environment variable')


@app.on_event('shutdown')
def stop_scheduler() -> None:
    app.state.scheduler.shutdown()


@app.get('/')
def root():
    return {'status': 'Veterinary Clinic API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(appointment_routes.router, prefix='/citas')
app.include_router(admin_routes.router, prefix='/admin/citas')
