from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import require_role
from ..database import get_db
from ..models import User
from ..schemas import StudentOut

router = APIRouter()


@router.get("/students", response_model=List[StudentOut])
def list_students(
    _admin: User = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    return db.query(User).filter(User.role == "student").order_by(User.created_at).all()
