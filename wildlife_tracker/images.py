"""Animal image storage on the local filesystem."""

from pathlib import Path
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from wildlife_tracker.db import fits_sql_integer
from wildlife_tracker.entities import Animal
from wildlife_tracker.errors import InvalidFile, NotFound
from wildlife_tracker.logging import get_logger

logger = get_logger(__name__)

IMAGE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


class AnimalImageService:
    """
    Stores at most one image per animal under ``image_dir``.

    The file name is derived from the animal id, so replacing an image
    overwrites (or swaps the extension of) the previous one.
    """

    def __init__(self, image_dir: Union[str, Path], max_bytes: int = 5 * 1024 * 1024):
        self.image_dir = Path(image_dir)
        self.max_bytes = max_bytes

    def _animal(self, session: Session, animal_id: int) -> Animal:
        animal = session.get(Animal, animal_id) if fits_sql_integer(animal_id) else None
        if animal is None:
            raise NotFound("Animal", animal_id)
        return animal

    def _validate(self, data: bytes, content_type: Optional[str]) -> str:
        if not data:
            raise InvalidFile("Uploaded file is empty")
        if len(data) > self.max_bytes:
            raise InvalidFile(f"Uploaded file exceeds {self.max_bytes} bytes")
        extension = IMAGE_EXTENSIONS.get((content_type or "").lower())
        if extension is None:
            allowed = ", ".join(sorted(IMAGE_EXTENSIONS))
            raise InvalidFile(f"Unsupported content type '{content_type}'. Allowed: {allowed}")
        return extension

    def create_or_replace(
        self,
        session: Session,
        animal_id: int,
        data: bytes,
        content_type: Optional[str],
    ) -> Path:
        """
        Store ``data`` as the image of an animal, replacing any previous one.

        Raises:
            NotFound: If the animal does not exist
            InvalidFile: If the upload is empty, too large or not an image
        """
        animal = self._animal(session, animal_id)
        extension = self._validate(data, content_type)

        self.image_dir.mkdir(parents=True, exist_ok=True)
        target = self.image_dir / f"{animal_id}{extension}"
        previous = Path(animal.image_path) if animal.image_path else None
        target.write_bytes(data)

        animal.image_path = str(target)
        try:
            session.add(animal)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            if previous != target:
                target.unlink(missing_ok=True)
            raise
        if previous is not None and previous != target:
            previous.unlink(missing_ok=True)
        logger.info("Stored image for animal %s (%d bytes)", animal_id, len(data))
        return target

    def delete(self, session: Session, animal_id: int) -> None:
        """
        Remove the image of an animal.

        Raises:
            NotFound: If the animal does not exist or has no image
        """
        animal = self._animal(session, animal_id)
        if not animal.image_path:
            raise NotFound("Image of animal", animal_id)

        path = Path(animal.image_path)
        animal.image_path = None
        session.add(animal)
        session.commit()
        path.unlink(missing_ok=True)
        logger.info("Deleted image for animal %s", animal_id)

    def discard(self, animal: Animal) -> None:
        """Remove the stored file of an animal that is already gone from the store"""
        if animal.image_path:
            Path(animal.image_path).unlink(missing_ok=True)
            logger.info("Discarded image of deleted animal %s", animal.id)
