import math

import pytest
import numpy as np

from config import ChainConfig
from physics import (
    GRAVITY,
    Chain,
    InvalidChain,
    InvalidLength,
    NonFiniteState,
    Pendulum,
)

# --- Fixtures ---


@pytest.fixture
def two_link_chain():
    """The reference two-link setup: link 0 at 3π/2, link 1 at π, no damping."""
    links = [Pendulum(3 * np.pi / 2, 25.0), Pendulum(np.pi, 25.0)]
    return Chain(links, damping=1.0)


@pytest.fixture
def dt_sequence():
    return [0.016, 0.017, 0.015, 0.016, 0.020, 0.001] * 20


# --- 1. Pendulum ---


@pytest.mark.parametrize("dt", [0.001, 0.016, 0.5, 1.0])
def test_equilibrium_is_fixed_point(dt):
    p = Pendulum(0.0, 25.0)
    assert p.integrate(dt) == 0
    assert p.angle == 0
    assert p.angular_speed == 0


def test_zero_dt_is_noop():
    p = Pendulum(1.0, 25.0, angular_speed=0.3)
    assert p.integrate(0.0) == 0
    assert p.angle == 1.0
    assert p.angular_speed == 0.3


def test_integrate_single_step():
    p = Pendulum(0.4, 2.0, angular_speed=0.1)
    delta = math.sin(0.4) * GRAVITY / 2.0 * 0.01

    result = p.integrate(0.01)

    assert result == pytest.approx(-delta)
    assert p.angular_speed == pytest.approx(0.1 + delta)
    assert p.angle == pytest.approx(0.4 - (0.1 + delta))


def test_released_pendulum_oscillates():
    """Angular speed changes sign repeatedly and nothing blows up."""
    p = Pendulum(np.pi / 2, 25.0)
    speeds = []
    angles = []
    for _ in range(1000):
        p.integrate(0.01)
        speeds.append(p.angular_speed)
        angles.append(p.angle)

    speeds = np.array(speeds)
    sign_changes = np.count_nonzero(np.diff(np.sign(speeds)) != 0)
    assert sign_changes >= 4
    assert np.all(np.isfinite(speeds))
    assert np.max(np.abs(angles)) < np.pi


def test_receive_zero_influence_is_identity():
    p = Pendulum(0.7, 25.0, angular_speed=-0.2)
    p.receive_influence(0.0)
    assert p.angle == 0.7
    assert p.angular_speed == -0.2


def test_receive_influence_touches_speed_only():
    p = Pendulum(0.7, 25.0, angular_speed=0.1)
    p.receive_influence(0.5)
    assert p.angle == 0.7
    assert p.angular_speed == pytest.approx(0.35)


@pytest.mark.parametrize("length", [0.0, -1.0, float("nan"), float("inf")])
def test_invalid_length_rejected_at_construction(length):
    with pytest.raises(InvalidLength):
        Pendulum(0.0, length)


def test_invalid_length_rejected_on_assignment():
    p = Pendulum(0.0, 25.0)
    with pytest.raises(InvalidLength):
        p.arm_length = 0.0
    assert p.arm_length == 25.0

    p.arm_length = 12.5
    assert p.arm_length == 12.5


def test_reset():
    p = Pendulum(0.7, 25.0, angular_speed=3.0)
    p.reset(1.5)
    assert p.angle == 1.5
    assert p.angular_speed == 0.0


# --- 2. Chain construction ---


def test_empty_chain_rejected():
    with pytest.raises(InvalidChain):
        Chain([])


def test_invalid_length_is_a_value_error():
    with pytest.raises(ValueError):
        Pendulum(0.0, 0.0)


@pytest.mark.parametrize("damping", [0.0, -0.5, float("nan")])
def test_invalid_damping_rejected(damping):
    with pytest.raises(ValueError):
        Chain([Pendulum(0.0, 1.0)], damping=damping)


def test_unknown_fault_policy_rejected():
    with pytest.raises(ValueError):
        Chain([Pendulum(0.0, 1.0)], on_fault="ignore")


def test_from_config():
    config = ChainConfig(link_count=4, arm_length=3.0, gravity=1.62, damping=None)
    chain = Chain.from_config(config)

    assert len(chain) == 4
    np.testing.assert_allclose(chain.angles, config.initial_angles())
    assert all(link.arm_length == 3.0 for link in chain)
    assert all(link.gravity == 1.62 for link in chain)
    assert chain.damping is None
    np.testing.assert_array_equal(chain.angular_speeds, np.zeros(4))


def test_set_arm_lengths():
    chain = Chain.from_config(ChainConfig(link_count=3))
    chain.set_arm_lengths(40.0)
    assert [link.arm_length for link in chain] == [40.0, 40.0, 40.0]

    with pytest.raises(InvalidLength):
        chain.set_arm_lengths(0.0)
    assert [link.arm_length for link in chain] == [40.0, 40.0, 40.0]


# --- 3. Tick ---


def test_single_link_chain_matches_integrate():
    chain = Chain([Pendulum(1.1, 25.0, angular_speed=0.05)])
    reference = Pendulum(1.1, 25.0, angular_speed=0.05)

    for dt in (0.016, 0.02, 0.01):
        chain.tick(dt)
        reference.integrate(dt)

    assert chain[0].angle == reference.angle
    assert chain[0].angular_speed == reference.angular_speed


def test_two_link_scenario(two_link_chain):
    dt = 0.016
    two_link_chain.tick(dt)
    link0, link1 = two_link_chain

    delta0 = math.sin(3 * math.pi / 2) * 9.82 / 25 * dt
    v0 = -delta0
    assert delta0 == pytest.approx(-0.0062848, rel=1e-4)

    # link 1 gets v0 / 2 before its own step
    delta1 = math.sin(math.pi) * 9.82 / 25 * dt
    speed1 = v0 / 2 + delta1
    assert speed1 == pytest.approx(0.0031424, rel=1e-4)
    assert link1.angular_speed == pytest.approx(speed1)
    assert link1.angle == pytest.approx(math.pi - speed1)

    # link 0 gets a quarter of link 1's influence after its own step
    v1 = -delta1
    assert link0.angular_speed == pytest.approx(delta0 + v1 / 4)
    assert link0.angle == pytest.approx(3 * math.pi / 2 - delta0)


def test_forward_influence_arrives_before_integration():
    links = [Pendulum(np.pi / 2, 25.0), Pendulum(0.0, 25.0), Pendulum(0.0, 25.0)]
    chain = Chain(links)
    chain.tick(0.016)

    v0 = -math.sin(np.pi / 2) * GRAVITY / 25.0 * 0.016
    # link 1 moved in this very pass with the speed it just received
    assert links[1].angular_speed == pytest.approx(v0 / 2)
    assert links[1].angle == pytest.approx(-v0 / 2)
    # link 1 itself produced no influence, so link 2 is untouched
    assert links[2].angle == 0.0
    assert links[2].angular_speed == 0.0


def test_backward_influence_is_one_tick_stale():
    links = [Pendulum(0.0, 25.0), Pendulum(np.pi / 2, 25.0)]
    chain = Chain(links)
    chain.tick(0.016)

    v1 = -math.sin(np.pi / 2) * GRAVITY / 25.0 * 0.016
    assert links[0].angle == 0.0
    assert links[0].angular_speed == pytest.approx(v1 / 4)


def test_damping_applied_before_integration():
    chain = Chain([Pendulum(0.0, 25.0, angular_speed=1.0)], damping=0.5)
    chain.tick(0.01)
    assert chain[0].angular_speed == 0.5
    assert chain[0].angle == -0.5


def test_disabled_damping_keeps_speed():
    chain = Chain([Pendulum(0.0, 25.0, angular_speed=1.0)], damping=None)
    chain.tick(0.01)
    assert chain[0].angular_speed == 1.0


def test_tick_is_deterministic(dt_sequence):
    config = ChainConfig(link_count=6)
    first = Chain.from_config(config)
    second = Chain.from_config(config)

    for dt in dt_sequence:
        first.tick(dt)
    for dt in dt_sequence:
        second.tick(dt)

    np.testing.assert_array_equal(first.angles, second.angles)
    np.testing.assert_array_equal(first.angular_speeds, second.angular_speeds)


@pytest.mark.parametrize("dt", [-0.01, float("nan"), float("inf")])
def test_invalid_time_step_rejected(dt, two_link_chain):
    with pytest.raises(ValueError):
        two_link_chain.tick(dt)


def test_zero_time_step_propagates_nothing(two_link_chain):
    two_link_chain.tick(0.0)
    np.testing.assert_array_equal(two_link_chain.angles, [3 * np.pi / 2, np.pi])
    np.testing.assert_array_equal(two_link_chain.angular_speeds, [0.0, 0.0])


# --- 4. Non-finite faults ---


@pytest.mark.parametrize("bad", [float("inf"), float("nan")])
def test_non_finite_link_raises(bad, two_link_chain):
    two_link_chain[0].angular_speed = bad
    with pytest.raises(NonFiniteState) as excinfo:
        two_link_chain.tick(0.016)
    assert excinfo.value.index == 0
    # nothing was propagated to the next link
    assert two_link_chain[1].angular_speed == 0.0


def test_non_finite_link_reset():
    config = ChainConfig(link_count=2, on_fault="reset", damping=None)
    chain = Chain.from_config(config)
    chain[1].angular_speed = float("nan")

    chain.tick(0.016)

    assert chain[1].angle == config.initial_angles()[1]
    assert chain[1].angular_speed == 0.0
    assert np.all(np.isfinite(chain.angles))
    assert np.all(np.isfinite(chain.angular_speeds))


# --- 5. Positions ---


def test_positions_single_link_at_rest():
    chain = Chain([Pendulum(0.0, 2.0)])
    np.testing.assert_allclose(chain.positions(), [[0.0, 0.0], [0.0, -2.0]])


def test_positions_use_nested_rotation():
    chain = Chain([Pendulum(np.pi / 2, 1.0), Pendulum(-np.pi / 2, 1.0)])
    points = chain.positions()

    assert points.shape == (3, 2)
    np.testing.assert_allclose(points, [[0.0, 0.0], [1.0, 0.0], [1.0, -1.0]], atol=1e-12)
    np.testing.assert_allclose(chain.end_effector(), [1.0, -1.0], atol=1e-12)
