from __future__ import annotations

import math
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

import numpy as np

from photocheck.analysis.regions import find_face_candidates
from photocheck.core.models import ComplianceThresholds, FaceBox

Point = Tuple[float, float]

# MediaPipe Face Mesh landmark indices
_RIGHT_EYE = (159, 145, 33, 133)  # upper, lower, outer, inner
_LEFT_EYE = (386, 374, 263, 362)
_MOUTH = (61, 291)
_FACE_SIDES = (234, 454)

_KEYPOINT_NAMES = ("right_eye", "left_eye", "nose_tip", "mouth_center", "right_ear", "left_ear")


class FaceDetector(Protocol):
    def detect(self, rgb: np.ndarray) -> List[FaceBox]:
        """Return every face found in an (H, W, 3) uint8 RGB image."""
        ...


class HeuristicFaceDetector:
    """Skin-region candidates exposed through the detector interface."""

    def __init__(self, thresholds: Optional[ComplianceThresholds] = None):
        self.thresholds = thresholds or ComplianceThresholds()

    def detect(self, rgb: np.ndarray) -> List[FaceBox]:
        return [region.box for region in find_face_candidates(rgb, self.thresholds)]


def _dist(a: Point, b: Point) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def eye_openness(upper: Point, lower: Point, outer: Point, inner: Point) -> float:
    """
    Eye-open probability from the eye aspect ratio (lid gap / eye width).

    ~0.28 for a relaxed open eye, below ~0.12 when closed.
    """
    width = _dist(outer, inner)
    if width <= 0:
        return 0.0
    ear = _dist(upper, lower) / width
    return float(min(1.0, max(0.0, (ear - 0.12) / 0.13)))


def smile_probability(mouth_left: Point, mouth_right: Point, face_left: Point, face_right: Point) -> float:
    """Mouth width relative to face width; a smile widens the mouth past ~0.42."""
    face_width = _dist(face_left, face_right)
    if face_width <= 0:
        return 0.0
    ratio = _dist(mouth_left, mouth_right) / face_width
    return float(min(1.0, max(0.0, (ratio - 0.42) / 0.10)))


def roll_degrees(right_eye: Point, left_eye: Point) -> float:
    """In-plane head rotation: angle of the line from the right eye (image left) to the left eye."""
    return math.degrees(math.atan2(left_eye[1] - right_eye[1], left_eye[0] - right_eye[0]))


class MediaPipeFaceDetector:
    """
    MediaPipe face detection (boxes, scores, keypoints) plus Face Mesh on the
    primary face for eye openness, smile and roll.

    MediaPipe is imported on first use; if it is missing or fails, detect() raises
    and callers fall back to the heuristic estimator.
    """

    def __init__(self, min_confidence: float = 0.5, max_faces: int = 5, model_selection: int = 1):
        self.min_confidence = min_confidence
        self.max_faces = max_faces
        self.model_selection = model_selection

    def detect(self, rgb: np.ndarray) -> List[FaceBox]:
        import mediapipe as mp

        h, w = rgb.shape[:2]
        with mp.solutions.face_detection.FaceDetection(
            model_selection=self.model_selection,
            min_detection_confidence=self.min_confidence,
        ) as face_detection:
            results = face_detection.process(np.ascontiguousarray(rgb))

        detections = list(results.detections or [])[: self.max_faces]
        boxes: List[FaceBox] = []
        for det in detections:
            rel = det.location_data.relative_bounding_box
            landmarks: Dict[str, Point] = {}
            for name, kp in zip(_KEYPOINT_NAMES, det.location_data.relative_keypoints):
                landmarks[name] = (kp.x * w, kp.y * h)
            roll = None
            if "right_eye" in landmarks and "left_eye" in landmarks:
                roll = roll_degrees(landmarks["right_eye"], landmarks["left_eye"])
            boxes.append(
                FaceBox(
                    left=rel.xmin * w,
                    top=rel.ymin * h,
                    width=rel.width * w,
                    height=rel.height * h,
                    confidence=float(det.score[0]) if det.score else 0.0,
                    landmarks=landmarks,
                    roll=roll,
                )
            )

        if len(boxes) == 1:
            boxes[0] = self._with_mesh(mp, rgb, boxes[0])
        return boxes

    def _with_mesh(self, mp, rgb: np.ndarray, box: FaceBox) -> FaceBox:
        h, w = rgb.shape[:2]
        with mp.solutions.face_mesh.FaceMesh(
            static_image_mode=True,
            refine_landmarks=True,
            max_num_faces=1,
            min_detection_confidence=self.min_confidence,
        ) as face_mesh:
            results = face_mesh.process(np.ascontiguousarray(rgb))

        if not results.multi_face_landmarks:
            return box
        lm = results.multi_face_landmarks[0].landmark

        def px(i: int) -> Point:
            return lm[i].x * w, lm[i].y * h

        return FaceBox(
            left=box.left,
            top=box.top,
            width=box.width,
            height=box.height,
            confidence=box.confidence,
            landmarks=box.landmarks,
            left_eye_open=eye_openness(*(px(i) for i in _LEFT_EYE)),
            right_eye_open=eye_openness(*(px(i) for i in _RIGHT_EYE)),
            smiling=smile_probability(px(_MOUTH[0]), px(_MOUTH[1]), px(_FACE_SIDES[0]), px(_FACE_SIDES[1])),
            roll=box.roll,
        )


def largest_face(boxes: Sequence[FaceBox]) -> Optional[FaceBox]:
    if not boxes:
        return None
    return max(boxes, key=lambda b: b.width * b.height)
