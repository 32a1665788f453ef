from sqlalchemy import Column, Integer, Text, text
from sqlalchemy.orm import declarative_base

Base = declarative_base()
metadata = Base.metadata


class StoreItems(Base):
    __tablename__ = 'store_items'

    partition_key = Column(Text, primary_key=True)
    sort_key = Column(Text, primary_key=True)
    data = Column(Text, nullable=False)
    version = Column(Integer, nullable=False, server_default=text('1'))
    updated_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))
