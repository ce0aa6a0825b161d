"""
SQLAlchemy-backed storage service for users, folders and notes.

Every folder and note method takes the caller's ``author_id`` and filters by
``(id, author_id)``, so a row owned by someone else looks exactly like a row
that does not exist.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional

from sqlalchemy import desc, func, or_, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..config import Config
from ..database import (
    Base,
    Folder as FolderORM,
    Note as NoteORM,
    User as UserORM,
    create_engine_for_url,
    get_engine,
    get_session_factory,
)
from .models import (
    Folder as FolderDTO,
    Note as NoteDTO,
    UserProfile,
)
from .text_utils import word_count


class FolderNotFoundError(LookupError):
    """Target folder is missing or belongs to another user."""


def _utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def _user_to_dto(user: UserORM) -> UserProfile:
    return UserProfile(
        id=user.id,
        name=user.name,
        email=user.email,
        created_at=user.created_at,
    )


def _folder_to_dto(folder: FolderORM, note_count: int = 0) -> FolderDTO:
    return FolderDTO(
        id=folder.id,
        author_id=folder.author_id,
        name=folder.name,
        created_at=folder.created_at,
        updated_at=folder.updated_at,
        note_count=note_count,
    )


def _note_to_dto(note: NoteORM) -> NoteDTO:
    return NoteDTO(
        id=note.id,
        author_id=note.author_id,
        folder_id=note.folder_id,
        title=note.title,
        content=note.content,
        created_at=note.created_at,
        updated_at=note.updated_at,
        word_count=word_count(note.content),
    )


class NoteStorage:
    """
    SQLAlchemy-based storage facade used by Flask routes.

    Each public method runs in its own session/transaction.
    """

    def __init__(self, db_path: Optional[Path] = None, database_url: Optional[str] = None):
        self.engine, self.session_factory = self._configure_engine(db_path, database_url)
        self.dialect = self.engine.dialect.name

        if self.dialect == "sqlite":
            # Dev/test databases are created on the fly; Postgres goes through Alembic.
            Base.metadata.create_all(bind=self.engine)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, name: str, email: str, password_hash: str) -> Optional[UserProfile]:
        """
        Insert a new user.

        Returns:
            The created profile, or None if the email is already registered.
        """
        try:
            with self._session_scope() as session:
                existing = session.query(UserORM.id).filter(UserORM.email == email).first()
                if existing:
                    return None

                user = UserORM(
                    name=name,
                    email=email,
                    password_hash=password_hash,
                    created_at=_utcnow(),
                )
                session.add(user)
                session.flush()
                return _user_to_dto(user)
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email.
            return None

    def get_user(self, user_id: int) -> Optional[UserProfile]:
        with self._session_scope() as session:
            user = session.get(UserORM, user_id)
            return _user_to_dto(user) if user else None

    def get_user_credentials(self, email: str) -> Optional[tuple[UserProfile, str]]:
        """Return ``(profile, password_hash)`` for login, or None if unknown."""
        with self._session_scope() as session:
            user = session.query(UserORM).filter(UserORM.email == email).one_or_none()
            if not user:
                return None
            return _user_to_dto(user), user.password_hash

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def list_folders(self, author_id: int) -> List[FolderDTO]:
        with self._session_scope() as session:
            counts = (
                session.query(NoteORM.folder_id, func.count(NoteORM.id).label("note_count"))
                .filter(NoteORM.author_id == author_id)
                .group_by(NoteORM.folder_id)
                .subquery()
            )
            rows = (
                session.query(FolderORM, counts.c.note_count)
                .outerjoin(counts, counts.c.folder_id == FolderORM.id)
                .filter(FolderORM.author_id == author_id)
                .order_by(desc(FolderORM.created_at), desc(FolderORM.id))
                .all()
            )
            return [_folder_to_dto(folder, count or 0) for folder, count in rows]

    def get_folder(self, author_id: int, folder_id: int) -> Optional[FolderDTO]:
        with self._session_scope() as session:
            folder = self._owned_folder(session, author_id, folder_id)
            if not folder:
                return None
            return _folder_to_dto(folder, self._count_notes(session, author_id, folder.id))

    def create_folder(self, author_id: int, name: str) -> FolderDTO:
        now = _utcnow()
        with self._session_scope() as session:
            folder = FolderORM(author_id=author_id, name=name, created_at=now, updated_at=now)
            session.add(folder)
            session.flush()
            return _folder_to_dto(folder)

    def rename_folder(self, author_id: int, folder_id: int, name: str) -> Optional[FolderDTO]:
        with self._session_scope() as session:
            folder = self._owned_folder(session, author_id, folder_id)
            if not folder:
                return None
            folder.name = name
            folder.updated_at = _utcnow()
            session.add(folder)
            session.flush()
            return _folder_to_dto(folder, self._count_notes(session, author_id, folder.id))

    def delete_folder(self, author_id: int, folder_id: int) -> bool:
        """Delete a folder and, through the cascade, every note in it."""
        with self._session_scope() as session:
            folder = self._owned_folder(session, author_id, folder_id)
            if not folder:
                return False
            session.delete(folder)
            return True

    def get_or_create_default_folder(self, author_id: int) -> FolderDTO:
        with self._session_scope() as session:
            folder = self._default_folder(session, author_id)
            return _folder_to_dto(folder, self._count_notes(session, author_id, folder.id))

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def list_notes(
        self,
        author_id: int,
        folder_id: Optional[int] = None,
        search: Optional[str] = None,
    ) -> List[NoteDTO]:
        with self._session_scope() as session:
            query = session.query(NoteORM).filter(NoteORM.author_id == author_id)

            if folder_id is not None:
                query = query.filter(NoteORM.folder_id == folder_id)

            if search:
                query = query.filter(
                    or_(
                        NoteORM.title.icontains(search, autoescape=True),
                        NoteORM.content.icontains(search, autoescape=True),
                    )
                )

            notes = query.order_by(desc(NoteORM.updated_at), desc(NoteORM.id)).all()
            return [_note_to_dto(note) for note in notes]

    def create_note(
        self,
        author_id: int,
        title: Optional[str] = None,
        content: Optional[str] = None,
        folder_id: Optional[int] = None,
    ) -> NoteDTO:
        """
        Create a note for ``author_id``.

        Args:
            folder_id: Target folder. When None the author's "Unfiled" folder
                is used, created on first use.

        Raises:
            FolderNotFoundError: folder_id is not one of the author's folders.
        """
        now = _utcnow()
        with self._session_scope() as session:
            if folder_id is not None:
                folder = self._owned_folder(session, author_id, folder_id)
                if not folder:
                    raise FolderNotFoundError(folder_id)
            else:
                folder = self._default_folder(session, author_id)

            note = NoteORM(
                author_id=author_id,
                folder_id=folder.id,
                title=title or Config.DEFAULT_NOTE_TITLE,
                content=content or "",
                created_at=now,
                updated_at=now,
            )
            session.add(note)
            session.flush()
            return _note_to_dto(note)

    def get_note(self, author_id: int, note_id: int) -> Optional[NoteDTO]:
        with self._session_scope() as session:
            note = self._owned_note(session, author_id, note_id)
            return _note_to_dto(note) if note else None

    def update_note(self, author_id: int, note_id: int, changes: Dict[str, Any]) -> Optional[NoteDTO]:
        """
        Apply a partial update (keys: title, content, folder_id).

        Returns:
            The updated note, or None if the note is not the author's.

        Raises:
            FolderNotFoundError: folder_id points at a folder the author does not own.
        """
        with self._session_scope() as session:
            note = self._owned_note(session, author_id, note_id)
            if not note:
                return None

            if "folder_id" in changes:
                folder = self._owned_folder(session, author_id, changes["folder_id"])
                if not folder:
                    raise FolderNotFoundError(changes["folder_id"])
                note.folder_id = folder.id

            if "title" in changes:
                note.title = changes["title"]
            if "content" in changes:
                note.content = changes["content"]

            note.updated_at = _utcnow()
            session.add(note)
            session.flush()
            return _note_to_dto(note)

    def delete_note(self, author_id: int, note_id: int) -> bool:
        with self._session_scope() as session:
            result = (
                session.query(NoteORM)
                .filter(NoteORM.id == note_id, NoteORM.author_id == author_id)
                .delete(synchronize_session=False)
            )
            return result > 0

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _owned_folder(self, session: Session, author_id: int, folder_id: int) -> Optional[FolderORM]:
        return (
            session.query(FolderORM)
            .filter(FolderORM.id == folder_id, FolderORM.author_id == author_id)
            .one_or_none()
        )

    def _owned_note(self, session: Session, author_id: int, note_id: int) -> Optional[NoteORM]:
        return (
            session.query(NoteORM)
            .filter(NoteORM.id == note_id, NoteORM.author_id == author_id)
            .one_or_none()
        )

    def _default_folder(self, session: Session, author_id: int) -> FolderORM:
        # Write-lock the author row so concurrent callers create at most one
        # folder. SQLite ignores SELECT ... FOR UPDATE, hence the no-op UPDATE.
        session.execute(
            update(UserORM)
            .where(UserORM.id == author_id)
            .values(name=UserORM.name)
            .execution_options(synchronize_session=False)
        )

        folder = (
            session.query(FolderORM)
            .filter(FolderORM.author_id == author_id, FolderORM.name == Config.DEFAULT_FOLDER_NAME)
            .order_by(FolderORM.id)
            .first()
        )
        if folder:
            return folder

        now = _utcnow()
        folder = FolderORM(
            author_id=author_id,
            name=Config.DEFAULT_FOLDER_NAME,
            created_at=now,
            updated_at=now,
        )
        session.add(folder)
        session.flush()
        return folder

    def _count_notes(self, session: Session, author_id: int, folder_id: int) -> int:
        return int(
            session.query(func.count(NoteORM.id))
            .filter(NoteORM.author_id == author_id, NoteORM.folder_id == folder_id)
            .scalar()
            or 0
        )

    def _configure_engine(
        self,
        db_path: Optional[Path],
        database_url: Optional[str],
    ) -> tuple[Engine, sessionmaker]:
        if database_url:
            engine = create_engine_for_url(database_url)
            factory = sessionmaker(
                bind=engine,
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
                future=True,
            )
            return engine, factory

        if db_path:
            resolved = Path(db_path).resolve()
            engine = create_engine_for_url(f"sqlite:///{resolved}")
            factory = sessionmaker(
                bind=engine,
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
                future=True,
            )
            return engine, factory

        return get_engine(), get_session_factory()

    @contextmanager
    def _session_scope(self) -> Generator[Session, None, None]:
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
