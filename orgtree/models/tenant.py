"""Tenant model"""

from sqlalchemy import Column, String
from orgtree.models.base import BaseModel


class Tenant(BaseModel):
    """
    Tenant model representing an isolation partition.
    Looked up by subdomain when resolving the active tenant of a request.
    """

    __tablename__ = "tenants"

    name = Column(String(255), nullable=False)
    subdomain = Column(String(100), unique=True, nullable=False, index=True)

    def __repr__(self):
        return f"<Tenant(id={self.id}, subdomain={self.subdomain})>"
