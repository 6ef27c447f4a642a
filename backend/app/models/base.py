"""Declarative base shared by all models"""
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Largest value an Integer column holds on every supported backend (signed 32-bit)
MAX_INTEGER = 2_147_483_647
