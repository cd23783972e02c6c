"""
podium/orm/team.py
"""
from sqlalchemy import Column, String

from podium.orm.base import BaseModel


class Team(BaseModel):
    __tablename__ = "teams"

    name = Column(String(128), nullable=False, unique=True)
    color = Column(String(16), nullable=True)
    logo_url = Column(String(512), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "logo_url": self.logo_url,
        }
