from ingest.db import SessionLocal, engine

__all__ = ["SessionLocal", "engine"]
