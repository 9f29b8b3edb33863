import threading
from pathlib import Path
from typing import Dict
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from filestream.models import Base

_engines: Dict[str, Engine] = {}
_engines_lock = threading.Lock()


def get_engine(db_path: str) -> Engine:
    """
    Create (once per path) the engine of the metadata index and its tables.
    """
    with _engines_lock:
        engine = _engines.get(db_path)
        if engine is None:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            engine = create_engine(
                f"sqlite:///{db_path}",
                connect_args={"check_same_thread": False},
            )
            Base.metadata.create_all(bind=engine)
            _engines[db_path] = engine
        return engine


def get_session_factory(db_path: str) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine(db_path))
