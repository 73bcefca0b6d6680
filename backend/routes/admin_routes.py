import logging
from datetime import date, datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query, Request
from pydantic import Field
from sqlalchemy.orm import Session

from backend.auth.dependencies import require_admin
from backend.database import get_db
from backend.models.user import User
from backend.routes.appointment_routes import (
    AppointmentResponse,
    CamelModel,
    to_appointment_response,
)
from backend.scheduling.maintenance import MaintenanceResult, SchedulerHandle, collect_maintenance_stats
from backend.scheduling.service import AppointmentService

router = APIRouter(tags=['admin-citas'])

logger = logging.getLogger(__name__)


class StatusCountResponse(CamelModel):
    estado: str
    count: int


class DayStatisticsResponse(CamelModel):
    dia: int
    estados: list[StatusCountResponse]
    total: int


class MonthlyStatisticsResponse(CamelModel):
    mes: int
    anio: int = Field(alias='año')
    estadisticas: list[DayStatisticsResponse]


class MaintenanceRunResponse(CamelModel):
    message: str
    success: bool
    citas_actualizadas: int
    citas_eliminadas: int
    timestamp: datetime
    error: str | None = None
    skipped: bool = False


class MaintenanceStatsResponse(CamelModel):
    por_estado: list[StatusCountResponse]
    citas_vencidas: int
    elegibles_eliminacion: int
    total_citas: int
    timestamp: datetime


class MaintenanceSettingsResponse(CamelModel):
    dias_para_eliminacion: int
    estados_para_actualizar: list[str]
    estados_para_eliminar: list[str]


class LastMaintenanceResponse(CamelModel):
    success: bool
    citas_actualizadas: int
    citas_eliminadas: int
    timestamp: datetime
    error: str | None = None


class SchedulerConfigResponse(CamelModel):
    activo: bool
    intervalo_por_horas: int
    proxima_ejecucion: datetime | None = None
    configuracion: MaintenanceSettingsResponse
    ultimo_mantenimiento: LastMaintenanceResponse | None = None


class ToggleSchedulerRequest(CamelModel):
    accion: Literal['iniciar', 'detener']


class ToggleSchedulerResponse(CamelModel):
    message: str
    activo: bool


def get_scheduler(request: Request) -> SchedulerHandle:
    return request.app.state.scheduler


def _run_message(result: MaintenanceResult) -> str:
    if result.skipped:
        return 'Maintenance already in progress.'
    if result.success:
        return 'Maintenance completed.'
    return 'Maintenance failed.'


@router.get('', response_model=list[AppointmentResponse])
def list_all_appointments(
    fecha: str | None = Query(default=None),
    estado: str | None = Query(default=None),
    tipo: str | None = Query(default=None),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    appointments = AppointmentService(db, admin).list_all(
        date_string=fecha,
        status=estado,
        appointment_type=tipo,
    )
    return [to_appointment_response(appointment) for appointment in appointments]


@router.get('/estadisticas', response_model=MonthlyStatisticsResponse)
def monthly_statistics(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    today = date.today()
    days = AppointmentService(db, admin).monthly_statistics(today)
    return MonthlyStatisticsResponse(
        mes=today.month,
        anio=today.year,
        estadisticas=[
            DayStatisticsResponse(
                dia=day.day,
                estados=[StatusCountResponse(estado=status, count=count) for status, count in day.statuses],
                total=day.total,
            )
            for day in days
        ],
    )


@router.post('/mantenimiento', response_model=MaintenanceRunResponse)
def run_maintenance_now(
    admin: User = Depends(require_admin),
    scheduler: SchedulerHandle = Depends(get_scheduler),
):
    logger.info('Manual appointment maintenance requested by admin %s', admin.id)
    result = scheduler.run_now()
    return MaintenanceRunResponse(
        message=_run_message(result),
        success=result.success,
        citas_actualizadas=result.advanced,
        citas_eliminadas=result.purged,
        timestamp=result.timestamp,
        error=result.error,
        skipped=result.skipped,
    )


@router.get('/estadisticas-mantenimiento', response_model=MaintenanceStatsResponse)
def maintenance_statistics(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    stats = collect_maintenance_stats(db)
    return MaintenanceStatsResponse(
        por_estado=[StatusCountResponse(estado=status, count=count) for status, count in stats.by_status],
        citas_vencidas=stats.overdue,
        elegibles_eliminacion=stats.purge_eligible,
        total_citas=stats.total,
        timestamp=stats.timestamp,
    )


@router.get('/config-automatico', response_model=SchedulerConfigResponse)
def scheduler_config(
    admin: User = Depends(require_admin),
    scheduler: SchedulerHandle = Depends(get_scheduler),
):
    state = scheduler.describe()
    last_result = state['last_result']
    return SchedulerConfigResponse(
        activo=state['active'],
        intervalo_por_horas=state['interval_hours'],
        proxima_ejecucion=state['next_run'],
        configuracion=MaintenanceSettingsResponse(
            dias_para_eliminacion=state['retention_days'],
            estados_para_actualizar=state['statuses_to_advance'],
            estados_para_eliminar=state['statuses_to_purge'],
        ),
        ultimo_mantenimiento=LastMaintenanceResponse(
            success=last_result.success,
            citas_actualizadas=last_result.advanced,
            citas_eliminadas=last_result.purged,
            timestamp=last_result.timestamp,
            error=last_result.error,
        ) if last_result else None,
    )


@router.post('/toggle-automatico', response_model=ToggleSchedulerResponse)
def toggle_scheduler(
    data: ToggleSchedulerRequest,
    admin: User = Depends(require_admin),
    scheduler: SchedulerHandle = Depends(get_scheduler),
):
    if data.accion == 'iniciar':
        changed = scheduler.start()
        message = 'Automatic maintenance started.' if changed else 'Automatic maintenance is already running.'
    else:
        changed = scheduler.stop()
        message = 'Automatic maintenance stopped.' if changed else 'Automatic maintenance is already stopped.'

    logger.info('Admin %s requested %s (changed=%s)', admin.id, data.accion, changed)
    return ToggleSchedulerResponse(message=message, activo=scheduler.is_running())
