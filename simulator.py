"""
N-Pendulum Simulation
Tick chains of coupled pendulums at a fixed time step and record their motion
"""

import multiprocessing as mp
import time
from typing import Iterable, Optional, Tuple

import dill
import numpy as np

from config import ChainConfig
from physics import Chain, NonFiniteState

_worker_config = None
_worker_frames = None
_worker_ticks = None
_worker_M = None
_worker_perturbation = None


def _worker_init(config_blob: bytes, frames: int, ticks_per_frame: int, M: int, perturbation: float) -> None:
    """Initializer for worker processes; restores shared context."""
    global _worker_config, _worker_frames, _worker_ticks, _worker_M, _worker_perturbation
    _worker_config = dill.loads(config_blob)
    _worker_frames = frames
    _worker_ticks = ticks_per_frame
    _worker_M = M
    _worker_perturbation = perturbation


def _worker_simulate_single(index: int) -> Tuple[int, np.ndarray]:
    """Run a single chain instance inside a worker process."""
    if _worker_config is None:
        raise RuntimeError("Worker config not initialized")

    config = _perturbed(_worker_config, index, _worker_M, _worker_perturbation)
    try:
        _, points = _run_chain(config, _worker_frames, _worker_ticks)
    except NonFiniteState as err:
        raise RuntimeError(f"Simulation failed for instance {index}: {err}") from err
    return index, points


def _perturbed(config: ChainConfig, index: int, M: int, perturbation: float) -> ChainConfig:
    # shifting the base angle shifts every initial angle by the same amount
    return config.replace(base_angle=config.base_angle - index / M * perturbation)


def _frame_timing(config: ChainConfig, duration: float, fps: int) -> Tuple[int, int, float]:
    if config.time_step is None:
        raise ValueError("Headless simulation needs a fixed time_step in the config")
    if duration <= 0 or fps <= 0:
        raise ValueError("duration and fps must be positive")
    ticks_per_frame = config.ticks_per_frame(fps)
    frame_interval = ticks_per_frame * config.time_step
    frames = int(duration / frame_interval) + 1
    return frames, ticks_per_frame, frame_interval


def _run_chain(config: ChainConfig, frames: int, ticks_per_frame: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Tick one chain and sample it once per frame.

    Returns angles (Frame, N) and joint positions (Frame, N+1, 2); frame 0
    is the initial state.
    """
    chain = Chain.from_config(config)
    angles = np.zeros((frames, config.link_count))
    points = np.zeros((frames, config.link_count + 1, 2))
    angles[0] = chain.angles
    points[0] = chain.positions()
    for frame in range(1, frames):
        for _ in range(ticks_per_frame):
            chain.tick(config.time_step)
        angles[frame] = chain.angles
        points[frame] = chain.positions()
    return angles, points


def simulate_chain(
    config: ChainConfig,
    duration: float = 10.0,
    fps: int = 60,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Simulate a single chain.

    Parameters:
    -----------
    config : ChainConfig
        Chain parameters; ``time_step`` must be set
    duration : float
        Simulated time in seconds
    fps : int
        Sampling rate of the returned frames

    Returns:
    --------
    t : array
        Frame times
    angles : array
        Link angles (shape: Frame x N)
    x, y : array
        Joint positions, pivot first (shape: Frame x N+1)
    """
    frames, ticks_per_frame, frame_interval = _frame_timing(config, duration, fps)
    angles, points = _run_chain(config, frames, ticks_per_frame)
    t = np.arange(frames) * frame_interval
    return t, angles, points[:, :, 0], points[:, :, 1]


def simulate_ensemble(
    config: ChainConfig,
    duration: float = 100.0,
    M: int = 100,
    perturbation: float = 1e-8,
    fps: int = 60,
    processes: Optional[int] = None,
    output: Optional[str] = 'simulation_results.npz',
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Simulate M chains with slightly different initial angles

    Parameters:
    -----------
    config : ChainConfig
        Shared chain parameters
    duration : float
        Simulated time in seconds
    M : int
        Number of chain instances
    perturbation : float
        Small shift of the initial angles, instance k starts k/M*perturbation lower
    fps : int
        Sampling rate of the returned frames
    processes : int | None
        Number of worker processes to use (default: cpu_count, falls back to sequential when <=1)
    output : str | None
        Where to save the results, nothing is written when None

    Returns:
    --------
    t : array
        Frame times
    x : array
        X positions of all joints (shape: Frame x N+1 x M)
    y : array
        Y positions of all joints (shape: Frame x N+1 x M)
    """
    if M < 1:
        raise ValueError(f"M must be >= 1, got {M}")

    N = config.link_count
    frames, ticks_per_frame, frame_interval = _frame_timing(config, duration, fps)
    t = np.arange(frames) * frame_interval

    x = np.zeros((frames, N + 1, M))
    y = np.zeros((frames, N + 1, M))

    print(f"Simulating {M} chain instances of N={N} links...")
    tic = time.time()

    cpu_total = mp.cpu_count() or 1
    processes = processes or min(M, cpu_total)
    processes = max(1, min(processes, M))

    if processes == 1:
        for ii in range(M):
            if (ii + 1) % 10 == 0 or ii + 1 == M:
                print(f"Progress: {ii+1}/{M}")

            try:
                _, points = _run_chain(_perturbed(config, ii, M, perturbation), frames, ticks_per_frame)
            except NonFiniteState as err:
                print(f"Warning: Simulation failed for instance {ii}: {err}")
                x[:, :, ii] = np.nan
                y[:, :, ii] = np.nan
                continue

            x[:, :, ii] = points[:, :, 0]
            y[:, :, ii] = points[:, :, 1]
    else:
        print(f"Using {processes} parallel workers...")
        config_blob = dill.dumps(config)
        ctx = mp.get_context("spawn")
        with ctx.Pool(
            processes=processes,
            initializer=_worker_init,
            initargs=(config_blob, frames, ticks_per_frame, M, perturbation),
        ) as pool:
            chunk_iter: Iterable[Tuple[int, np.ndarray]] = pool.imap_unordered(_worker_simulate_single, range(M))
            for completed, (idx, points) in enumerate(chunk_iter, start=1):
                x[:, :, idx] = points[:, :, 0]
                y[:, :, idx] = points[:, :, 1]
                if (completed % 10 == 0) or completed == M:
                    print(f"Progress: {completed}/{M}")

    toc = time.time()
    print(f"Simulation completed in {toc-tic:.1f} seconds")

    if output is not None:
        np.savez(output, t=t, x=x, y=y, N=N, M=M, arm_length=config.arm_length)
        print(f"Results saved to {output}")

    return t, x, y


if __name__ == '__main__':
    # Run simulation
    t, x, y = simulate_ensemble(ChainConfig(link_count=3), duration=100, M=100)
