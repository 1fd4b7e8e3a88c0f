from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence


@dataclass(frozen=True)
class BoundingBox:
    x: int
    y: int
    width: int
    height: int


@dataclass(frozen=True)
class Face:
    box: BoundingBox
    descriptor: Sequence[float]


@dataclass(frozen=True)
class CapturedFrame:
    image: Any
    # data:image/jpeg;base64,... as stored in the reference set
    encoded: str

    @property
    def size_bytes(self) -> int:
        return (len(self.encoded) * 3) // 4


class Camera(Protocol):
    def open(self) -> None: ...

    def grab(self) -> CapturedFrame: ...

    def release(self) -> None: ...


class FaceDetector(Protocol):
    def detect(self, image: Any) -> Optional[Face]: ...
