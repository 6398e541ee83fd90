from .database import Base, build_engine, build_session_factory, get_engine, get_session_factory

__all__ = ["Base", "build_engine", "build_session_factory", "get_engine", "get_session_factory"]
