"""
Database models package
"""
from app.models.user import User
from app.models.quiz import Quiz
from app.models.collection import Collection

__all__ = ["User", "Quiz", "Collection"]
