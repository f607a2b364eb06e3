from sqlalchemy.orm import declarative_base

# Shared declarative base so one create_all() covers every table
Base = declarative_base()
