from sqlalchemy import Column, String, Text, DateTime, func

from models.base import Base


class KeyValueRecord(Base):
    """
    Durable key-value record backing the local persistence medium.

    Values are JSON documents written by the cart store, the offline queue,
    the offline data cache and the network cache layer, each under its own
    namespaced key.
    """
    __tablename__ = 'kv_records'

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())
