"""Project repository for database operations."""

import uuid

from ..models import Project
from ..exceptions import ProjectNotFoundError


class ProjectRepository:
    """Repository for project rows. Project CRUD screens live outside this backend."""

    def __init__(self, db):
        self.db = db

    def get_by_id(self, project_id: str) -> Project:
        """Project a page belongs to. Raises ProjectNotFoundError if missing."""
        project = self.db.get(Project, project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    def create(self, name: str, description: str = "", style_description: str = "") -> Project:
        """Create a new project."""
        project = Project(
            id=str(uuid.uuid4()),
            name=name,
            description=description,
            style_description=style_description,
        )
        self.db.add(project)
        self.db.flush()
        return project
