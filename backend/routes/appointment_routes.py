from datetime import date, datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user, require_admin
from backend.database import get_db
from backend.models.appointment import Appointment
from backend.models.user import User
from backend.scheduling.calendar_rules import normalize_date
from backend.scheduling.lifecycle import AppointmentStatus, AppointmentType
from backend.scheduling.service import AppointmentService

router = APIRouter(tags=['citas'])


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class CreateAppointmentRequest(CamelModel):
    pet_id: int
    appointment_type: AppointmentType = Field(alias='type')
    date: str
    time: str
    reason: str
    notes: str | None = None


class UpdateAppointmentRequest(CamelModel):
    appointment_type: AppointmentType | None = Field(default=None, alias='type')
    date: str | None = None
    time: str | None = None
    reason: str | None = None
    notes: str | None = None


class UpdateStatusRequest(CamelModel):
    status: AppointmentStatus = Field(alias='estado')


class PetSummaryResponse(CamelModel):
    id: int
    name: str
    species: str
    breed: str


class OwnerSummaryResponse(CamelModel):
    id: int
    name: str
    email: str
    phone: str


class AppointmentResponse(CamelModel):
    id: int
    pet_id: int
    owner_id: int
    appointment_type: str = Field(alias='type')
    date: date
    time: str
    reason: str
    status: str
    notes: str
    created_at: datetime
    updated_at: datetime
    pet: PetSummaryResponse | None = None
    owner: OwnerSummaryResponse | None = None


class SlotResponse(CamelModel):
    hora: str
    periodo: str
    disponible: bool = True


class AvailableSlotsResponse(CamelModel):
    fecha: str
    horarios_disponibles: list[SlotResponse]
    total_disponibles: int


class MessageResponse(BaseModel):
    message: str


def get_appointment_service(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> AppointmentService:
    return AppointmentService(db, current_user)


def to_appointment_response(appointment: Appointment) -> AppointmentResponse:
    pet = appointment.pet
    owner = appointment.owner
    return AppointmentResponse(
        id=appointment.id,
        pet_id=appointment.pet_id,
        owner_id=appointment.owner_id,
        appointment_type=appointment.appointment_type,
        date=appointment.date,
        time=appointment.time,
        reason=appointment.reason,
        status=appointment.status,
        notes=appointment.notes or '',
        created_at=appointment.created_at,
        updated_at=appointment.updated_at,
        pet=PetSummaryResponse(
            id=pet.id,
            name=pet.name,
            species=pet.species,
            breed=pet.breed or '',
        ) if pet else None,
        owner=OwnerSummaryResponse(
            id=owner.id,
            name=owner.name or '',
            email=owner.email,
            phone=owner.phone or '',
        ) if owner else None,
    )


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.book(
        pet_id=data.pet_id,
        appointment_type=data.appointment_type.value,
        date_string=data.date,
        time_string=data.time,
        reason=data.reason,
        notes=data.notes,
    )
    return to_appointment_response(appointment)


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(service: AppointmentService = Depends(get_appointment_service)):
    return [to_appointment_response(appointment) for appointment in service.list_visible()]


@router.get('/horarios-disponibles/{fecha}', response_model=AvailableSlotsResponse)
def list_available_slots(fecha: str, service: AppointmentService = Depends(get_appointment_service)):
    slots = service.available_slots(fecha)
    return AvailableSlotsResponse(
        fecha=normalize_date(fecha).isoformat(),
        horarios_disponibles=[
            SlotResponse(hora=str(slot.time), periodo=slot.period.value)
            for slot in slots
        ],
        total_disponibles=len(slots),
    )


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(appointment_id: int, service: AppointmentService = Depends(get_appointment_service)):
    return to_appointment_response(service.get(appointment_id))


@router.put('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.edit(
        appointment_id,
        appointment_type=data.appointment_type.value if data.appointment_type else None,
        date_string=data.date,
        time_string=data.time,
        reason=data.reason,
        notes=data.notes,
    )
    return to_appointment_response(appointment)


@router.delete('/{appointment_id}', response_model=MessageResponse)
def cancel_appointment(appointment_id: int, service: AppointmentService = Depends(get_appointment_service)):
    service.cancel(appointment_id)
    return MessageResponse(message='Appointment cancelled.')


@router.put('/{appointment_id}/estado', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    data: UpdateStatusRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    appointment = AppointmentService(db, admin).set_status(appointment_id, data.status.value)
    return to_appointment_response(appointment)
