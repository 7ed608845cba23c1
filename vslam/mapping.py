"""Features, frames, landmarks and the map that ties them together.

Features refer to their frame and to their landmark weakly, and landmarks
refer weakly to the features that observe them. The frames own the
features, and the map owns the frames and landmarks.
"""

from __future__ import annotations

import itertools
import logging
import threading
import weakref

import numpy as np

from vslam.lie import SE3

log = logging.getLogger(__name__)

NUM_ACTIVE_KEYFRAMES = 7
MIN_DISTANCE_THRESHOLD = 0.2
_INITIAL_MIN_DISTANCE = 9999.0


def _ref(obj):
    return None if obj is None else weakref.ref(obj)


def _deref(ref):
    return None if ref is None else ref()


class Feature:
    """A 2-D keypoint in one image of a frame, linked to a landmark once triangulated."""

    __slots__ = (
        "_frame",
        "position",
        "_map_point",
        "is_outlier",
        "is_on_left_image",
        "__weakref__",
    )

    def __init__(self, frame=None, position=(0.0, 0.0), map_point=None, is_on_left_image=True):
        self._frame = _ref(frame)
        self.position = np.asarray(position, dtype=float)
        self._map_point = _ref(map_point)
        self.is_outlier = False
        self.is_on_left_image = is_on_left_image

    @property
    def frame(self):
        """The frame holding this feature, or ``None`` once it is gone."""
        return _deref(self._frame)

    @frame.setter
    def frame(self, value):
        self._frame = _ref(value)

    @property
    def map_point(self):
        """The landmark this feature observes, or ``None``."""
        return _deref(self._map_point)

    @map_point.setter
    def map_point(self, value):
        self._map_point = _ref(value)

    def __repr__(self):
        return f"Feature(position={self.position.tolist()}, left={self.is_on_left_image})"


class Frame:
    """A stereo frame with its own id and, once a keyframe, a keyframe id."""

    _ids = itertools.count()
    _keyframe_ids = itertools.count()
    _id_lock = threading.Lock()

    def __init__(self, id=0, time_stamp=0.0, pose=None, left_img=None, right_img=None):
        self.id = id
        self.keyframe_id = 0
        self.is_keyframe = False
        self.time_stamp = time_stamp
        self._pose = SE3() if pose is None else pose
        self._pose_lock = threading.Lock()
        self.left_img = left_img
        self.right_img = right_img
        self.features_left = []
        self.features_right = []

    @classmethod
    def create(cls):
        """A new frame with the next free frame id."""
        frame = cls()
        with Frame._id_lock:
            frame.id = next(Frame._ids)
        return frame

    def set_keyframe(self):
        """Mark this frame as a keyframe and give it the next keyframe id."""
        with Frame._id_lock:
            self.keyframe_id = next(Frame._keyframe_ids)
        self.is_keyframe = True

    def pose(self):
        """The world-to-camera transform T_cw."""
        with self._pose_lock:
            return self._pose

    def set_pose(self, pose):
        """Replace the world-to-camera transform."""
        with self._pose_lock:
            self._pose = pose

    def __repr__(self):
        return f"Frame(id={self.id}, keyframe_id={self.keyframe_id}, keyframe={self.is_keyframe})"


class MapPoint:
    """A landmark in the world, created by triangulating features."""

    _ids = itertools.count()
    _id_lock = threading.Lock()

    def __init__(self, id=0, position=None):
        self.id = id
        self.is_outlier = False
        self._position = np.zeros(3) if position is None else np.asarray(position, dtype=float)
        self._lock = threading.Lock()
        self.observed_times = 0
        self._observations = []

    @classmethod
    def create(cls):
        """A new landmark with the next free id."""
        point = cls()
        with MapPoint._id_lock:
            point.id = next(MapPoint._ids)
        return point

    @property
    def position(self):
        """Position in the world frame."""
        with self._lock:
            return self._position

    @position.setter
    def position(self, value):
        with self._lock:
            self._position = np.asarray(value, dtype=float)

    def add_observation(self, feature):
        """Record a feature observing this landmark."""
        with self._lock:
            self._observations.append(weakref.ref(feature))
            self.observed_times += 1

    def remove_observation(self, feature):
        """Forget a feature's observation and unlink it; return whether it was found."""
        with self._lock:
            for ref in self._observations:
                if ref() is feature:
                    self._observations.remove(ref)
                    feature.map_point = None
                    self.observed_times -= 1
                    return True
        return False

    def observations(self):
        """The observing features that still exist."""
        with self._lock:
            refs = list(self._observations)
        return [feature for feature in (ref() for ref in refs) if feature is not None]

    def __repr__(self):
        return f"MapPoint(id={self.id}, observed_times={self.observed_times})"


class Map:
    """All keyframes and landmarks, and the active window of them."""

    def __init__(self, num_active_keyframes=NUM_ACTIVE_KEYFRAMES):
        self.num_active_keyframes = num_active_keyframes
        self._lock = threading.RLock()
        self._landmarks = {}
        self._active_landmarks = {}
        self._keyframes = {}
        self._active_keyframes = {}
        self._current_frame = None

    def insert_keyframe(self, frame):
        """Add a keyframe; returns the keyframe deactivated to make room, if any."""
        with self._lock:
            self._current_frame = frame
            self._keyframes[frame.keyframe_id] = frame
            self._active_keyframes[frame.keyframe_id] = frame
            if len(self._active_keyframes) > self.num_active_keyframes:
                return self._remove_old_keyframe()
        return None

    def insert_map_point(self, map_point):
        """Add a landmark, or replace one with the same id."""
        with self._lock:
            self._landmarks[map_point.id] = map_point
            self._active_landmarks[map_point.id] = map_point

    def all_map_points(self):
        """A copy of all landmarks by id."""
        with self._lock:
            return dict(self._landmarks)

    def all_keyframes(self):
        """A copy of all keyframes by keyframe id."""
        with self._lock:
            return dict(self._keyframes)

    def active_map_points(self):
        """A copy of the active landmarks by id."""
        with self._lock:
            return dict(self._active_landmarks)

    def active_keyframes(self):
        """A copy of the active keyframes by keyframe id."""
        with self._lock:
            return dict(self._active_keyframes)

    def _remove_old_keyframe(self):
        current = self._current_frame
        if current is None:
            return None
        others = [
            (kf_id, kf) for kf_id, kf in self._active_keyframes.items() if kf is not current
        ]
        if not others:
            return None
        max_dis, min_dis = 0.0, _INITIAL_MIN_DISTANCE
        max_kf_id, min_kf_id = 0, 0
        twc = current.pose().inverse()
        for kf_id, kf in others:
            dis = float(np.linalg.norm((kf.pose() * twc).log()))
            if dis > max_dis:
                max_dis, max_kf_id = dis, kf_id
            if dis < min_dis:
                min_dis, min_kf_id = dis, kf_id

        chosen = min_kf_id if min_dis < MIN_DISTANCE_THRESHOLD else max_kf_id
        frame_to_remove = self._keyframes[chosen]
        log.info("remove keyframe %s", frame_to_remove.keyframe_id)
        self._active_keyframes.pop(frame_to_remove.keyframe_id, None)
        for feature in itertools.chain(frame_to_remove.features_left, frame_to_remove.features_right):
            if feature is None:
                continue
            point = feature.map_point
            if point is not None:
                point.remove_observation(feature)
        self.clean_map()
        return frame_to_remove

    def clean_map(self):
        """Deactivate landmarks no feature observes; returns how many were removed."""
        with self._lock:
            unobserved = [
                point_id
                for point_id, point in self._active_landmarks.items()
                if point.observed_times == 0
            ]
            for point_id in unobserved:
                del self._active_landmarks[point_id]
        log.info("Removed %d active landmarks", len(unobserved))
        return len(unobserved)