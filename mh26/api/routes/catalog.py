# mh26/api/routes/catalog.py

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from mh26.db.base import get_db
from mh26.db.models.category import Category
from mh26.db.models.enums import ProviderStatus
from mh26.db.models.provider import Provider
from mh26.db.models.service import Service
from mh26.db.models.user import User
from mh26.schemas.catalog import CategoryCreate, CategoryResponse, ServiceCreate, ServiceResponse, ServiceUpdate
from mh26.core.security import get_current_user, require_admin


router = APIRouter(tags=["catalog"])


@router.get("/categories", response_model=list[CategoryResponse])
def list_categories(db: Session = Depends(get_db)):
    return db.query(Category).order_by(Category.name).all()


@router.post("/categories", response_model=CategoryResponse, status_code=201)
def create_category(payload: CategoryCreate, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    if db.query(Category).filter(Category.name == payload.name).first():
        raise HTTPException(status_code=400, detail="Category already exists")
    category = Category(name=payload.name, description=payload.description)
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def _approved_provider(db: Session, user: User) -> Provider:
    provider = db.query(Provider).filter(Provider.user_id == user.id).first()
    if not provider:
        raise HTTPException(status_code=403, detail="Only providers can manage services")
    if provider.status != ProviderStatus.APPROVED:
        raise HTTPException(status_code=403, detail="Provider account is not approved")
    return provider


# Provider creates service

@router.post("/services/provider/services", response_model=ServiceResponse, status_code=201)
def create_service(
    service_data: ServiceCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    provider = _approved_provider(db, current_user)

    if service_data.category_id is not None:
        category = db.query(Category).filter(Category.id == service_data.category_id).first()
        if not category:
            raise HTTPException(404, detail="Category not found")

    new_service = Service(
        provider_id=provider.id,
        category_id=service_data.category_id or provider.category_id,
        name=service_data.name,
        description=service_data.description,
        price=service_data.price,
        duration_minutes=service_data.duration_minutes,
        is_active=service_data.is_active,
    )

    db.add(new_service)
    db.commit()
    db.refresh(new_service)

    return new_service


@router.put("/services/provider/services/{service_id}", response_model=ServiceResponse)
def update_service(
    service_id: int,
    service_data: ServiceUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    provider = _approved_provider(db, current_user)
    service = db.query(Service).filter(Service.id == service_id, Service.provider_id == provider.id).first()
    if not service:
        raise HTTPException(404, detail="Service not found")

    for field, value in service_data.model_dump(exclude_unset=True).items():
        setattr(service, field, value)

    db.commit()
    db.refresh(service)
    return service


@router.get("/services/provider/{provider_id}", response_model=list[ServiceResponse])
def list_provider_services(provider_id: int, db: Session = Depends(get_db)):
    return db.query(Service).filter(
        Service.provider_id == provider_id, Service.is_active == True  # noqa: E712
    ).order_by(Service.id).all()
