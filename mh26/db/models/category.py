# mh26/db/models/category.py
from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship

from mh26.db.base import Base


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(String, nullable=True)

    services = relationship(
        "Service",
        back_populates="category",
        lazy="selectin"
    )
