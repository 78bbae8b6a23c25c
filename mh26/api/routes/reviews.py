# mh26/api/routes/reviews.py
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List

from mh26.db.base import get_db
from mh26.db.models.user import User
from mh26.schemas.review import ReviewCreate, ReviewResponse
from mh26.services.ratings import RatingService
from mh26.core.security import get_current_user, require_admin

router = APIRouter(prefix="/reviews", tags=["reviews"])

# Create review (customer of a completed booking)
@router.post("/", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
def create_review(review_in: ReviewCreate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return RatingService(db).submit_review(review_in.booking_id, review_in.rating, review_in.comment, current_user.id)

# List reviews for a provider (public)
@router.get("/provider/{provider_id}", response_model=List[ReviewResponse])
def list_provider_reviews(provider_id: int, limit: int = Query(50, ge=1, le=200), db: Session = Depends(get_db)):
    return RatingService(db).reviews_for_provider(provider_id, limit=limit)

# Admin: delete a review (aggregate is reversed)
@router.delete("/{review_id}", status_code=status.HTTP_204_NO_CONTENT)
def admin_delete_review(review_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    RatingService(db).delete_review(review_id)
    return
