import logging
from typing import Optional

import numpy as np

from ..core.config import settings
from .types import BoundingBox, Face

logger = logging.getLogger(__name__)


class FaceRecognitionDetector:
    """Detect-and-describe backed by the ``face_recognition`` (dlib) models.

    Returns the largest face in the image with its 128-d descriptor.
    """

    def __init__(self, model: Optional[str] = None, upsample: int = 1):
        self.model = model or settings.DETECTION_MODEL
        self.upsample = upsample
        self._fr = None

    def _lib(self):
        if self._fr is None:
            import face_recognition

            self._fr = face_recognition
            logger.info("Loaded face_recognition models (%s)", self.model)
        return self._fr

    def detect(self, image: np.ndarray) -> Optional[Face]:
        fr = self._lib()
        locations = fr.face_locations(image, number_of_times_to_upsample=self.upsample, model=self.model)
        if not locations:
            return None

        top, right, bottom, left = max(locations, key=lambda loc: (loc[2] - loc[0]) * (loc[1] - loc[3]))
        encodings = fr.face_encodings(image, [(top, right, bottom, left)])
        if not encodings:
            return None

        box = BoundingBox(x=left, y=top, width=right - left, height=bottom - top)
        return Face(box=box, descriptor=encodings[0].tolist())
