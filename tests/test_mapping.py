import numpy as np

from vslam.lie import SE3
from vslam.mapping import Feature, Frame, Map, MapPoint


def _keyframe(x):
    frame = Frame.create()
    frame.set_pose(SE3(None, [x, 0.0, 0.0]))
    frame.set_keyframe()
    return frame


def test_frame_ids_are_consecutive():
    first = Frame.create()
    second = Frame.create()
    assert second.id == first.id + 1
    assert not first.is_keyframe


def test_keyframe_ids_are_consecutive():
    first = Frame.create()
    second = Frame.create()
    first.set_keyframe()
    second.set_keyframe()
    assert first.is_keyframe and second.is_keyframe
    assert second.keyframe_id == first.keyframe_id + 1


def test_frame_pose_round_trip():
    frame = Frame.create()
    assert np.allclose(frame.pose().matrix(), np.eye(4))
    pose = SE3(None, [1.0, 2.0, 3.0])
    frame.set_pose(pose)
    assert np.allclose(frame.pose().translation, [1.0, 2.0, 3.0])


def test_feature_links_are_weak_references():
    frame = Frame.create()
    point = MapPoint.create()
    feature = Feature(frame, (4.0, 5.0), point)
    assert feature.frame is frame
    assert feature.map_point is point
    assert np.allclose(feature.position, [4.0, 5.0])
    del point
    assert feature.map_point is None


def test_map_point_ids_are_consecutive():
    first = MapPoint.create()
    second = MapPoint.create()
    assert second.id == first.id + 1


def test_map_point_position_round_trip():
    point = MapPoint.create()
    assert np.allclose(point.position, np.zeros(3))
    point.position = [1.0, -2.0, 0.5]
    assert np.allclose(point.position, [1.0, -2.0, 0.5])


def test_add_and_remove_observation():
    point = MapPoint.create()
    features = [Feature(None, (0, 0), point), Feature(None, (1, 1), point)]
    for feature in features:
        point.add_observation(feature)
    assert point.observed_times == 2
    assert point.observations() == features

    assert point.remove_observation(features[0]) is True
    assert point.observed_times == 1
    assert features[0].map_point is None
    assert point.observations() == [features[1]]


def test_remove_unknown_observation_changes_nothing():
    point = MapPoint.create()
    known = Feature(None, (0, 0), point)
    point.add_observation(known)
    stranger = Feature(None, (0, 0), point)
    assert point.remove_observation(stranger) is False
    assert point.observed_times == 1
    assert stranger.map_point is point


def test_insert_and_copies():
    world = Map()
    frame = _keyframe(0.0)
    point = MapPoint.create()
    world.insert_keyframe(frame)
    world.insert_map_point(point)
    assert world.all_keyframes() == {frame.keyframe_id: frame}
    assert world.active_keyframes() == {frame.keyframe_id: frame}
    assert world.all_map_points() == {point.id: point}
    copy = world.active_map_points()
    copy.clear()
    assert world.active_map_points() == {point.id: point}


def test_window_keeps_seven_keyframes():
    world = Map()
    frames = [_keyframe(float(i)) for i in range(8)]
    for frame in frames:
        world.insert_keyframe(frame)
    assert len(world.active_keyframes()) == 7
    assert len(world.all_keyframes()) == 8


def test_closest_keyframe_removed_when_very_close():
    world = Map(num_active_keyframes=2)
    a, b, c = _keyframe(0.0), _keyframe(5.0), _keyframe(0.1)
    world.insert_keyframe(a)
    world.insert_keyframe(b)
    removed = world.insert_keyframe(c)
    assert removed is a
    assert set(world.active_keyframes()) == {b.keyframe_id, c.keyframe_id}


def test_farthest_keyframe_removed_otherwise():
    world = Map(num_active_keyframes=2)
    a, b, c = _keyframe(0.0), _keyframe(5.0), _keyframe(1.0)
    world.insert_keyframe(a)
    world.insert_keyframe(b)
    removed = world.insert_keyframe(c)
    assert removed is b
    assert set(world.active_keyframes()) == {a.keyframe_id, c.keyframe_id}


def test_removing_keyframe_drops_its_observations_and_cleans():
    world = Map(num_active_keyframes=2)
    a, b, c = _keyframe(0.0), _keyframe(5.0), _keyframe(0.1)
    lonely = MapPoint.create()
    shared = MapPoint.create()
    feature_a = Feature(a, (1, 1), lonely)
    feature_a2 = Feature(a, (2, 2), shared)
    feature_b = Feature(b, (3, 3), shared)
    a.features_left.extend([feature_a, feature_a2])
    a.features_right.append(None)
    b.features_left.append(feature_b)
    lonely.add_observation(feature_a)
    shared.add_observation(feature_a2)
    shared.add_observation(feature_b)
    world.insert_map_point(lonely)
    world.insert_map_point(shared)

    for frame in (a, b, c):
        world.insert_keyframe(frame)

    assert lonely.observed_times == 0
    assert feature_a.map_point is None
    assert shared.observations() == [feature_b]
    assert set(world.active_map_points()) == {shared.id}
    assert set(world.all_map_points()) == {lonely.id, shared.id}


def test_clean_map_counts_removed():
    world = Map()
    unseen = MapPoint.create()
    seen = MapPoint.create()
    feature = Feature(None, (0, 0), seen)
    seen.add_observation(feature)
    world.insert_map_point(unseen)
    world.insert_map_point(seen)
    assert world.clean_map() == 1
    assert set(world.active_map_points()) == {seen.id}
    assert world.clean_map() == 0