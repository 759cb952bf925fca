import os

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

# SQLite DB in the project folder unless FITRULE_DATABASE_URL says otherwise
SQLALCHEMY_DATABASE_URL = os.environ.get("FITRULE_DATABASE_URL", "sqlite:///fitrule.db")

connect_args = {}
if SQLALCHEMY_DATABASE_URL.startswith("sqlite"):
    connect_args["check_same_thread"] = False  # needed for SQLite + threads

engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args=connect_args)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# This is what models.py imports
Base = declarative_base()
