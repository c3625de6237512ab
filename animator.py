"""
N-Pendulum Animation
Drive a live chain frame by frame, or replay saved simulation results
"""

from collections import deque
import time
from typing import Callable, Optional

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.animation import FuncAnimation, FFMpegWriter
from matplotlib.collections import LineCollection

from config import ChainConfig
from physics import Chain

LINK_COLORS = ('blue', 'red')
TRACE_COLOR = 'green'
TRACE_SIZE = 2.5


def arm_length_for_display(width: float, height: float, link_count: int) -> float:
    """Arm length that keeps a fully stretched chain inside the display."""
    return min(width, height) / (2.0 * (link_count + 1))


def link_segments(x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """
    Turn joint coordinates into drawable link segments.

    ``x`` and ``y`` hold N+1 joints along their first axis, optionally
    followed by an instance axis. Returns segments of shape (..., 2, 2)
    ordered link by link within each instance.
    """
    joints = np.stack([x, y], axis=-1)
    if joints.ndim == 3:
        # (N+1, M, 2) -> (M, N+1, 2)
        joints = joints.transpose(1, 0, 2)
    segments = np.stack([joints[..., :-1, :], joints[..., 1:, :]], axis=-2)
    return segments.reshape(-1, 2, 2)


def link_colors(link_count: int, instances: int = 1) -> list:
    return [LINK_COLORS[k % 2] for k in range(link_count)] * instances


class TraceHistory:
    """Bounded history of end-effector points, oldest dropped first."""

    def __init__(self, capacity: int):
        self._points = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._points)

    def append(self, point) -> None:
        self._points.append((float(point[0]), float(point[1])))

    def as_array(self) -> np.ndarray:
        if not self._points:
            return np.empty((0, 2))
        return np.array(self._points)


class LiveChain:
    """
    Frame-side wrapper around a chain.

    Each frame resizes the links to the display, ticks the chain as many
    times as the headless simulator would at the same frame rate and records
    the end effector, in that order. With ``time_step=None`` the chain ticks
    once per frame with the time measured by ``clock`` since the last frame.
    """

    def __init__(
        self,
        config: ChainConfig,
        fps: int = 60,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.config = config
        self.chain = Chain.from_config(config)
        self.trace = TraceHistory(config.trace_points)
        self.ticks_per_frame = config.ticks_per_frame(fps)
        self._clock = clock
        self._last_time = clock()

    def next_dt(self) -> float:
        if self.config.time_step is not None:
            return self.config.time_step
        now = self._clock()
        dt, self._last_time = now - self._last_time, now
        return dt

    def advance(self, width: float, height: float) -> np.ndarray:
        self.chain.set_arm_lengths(arm_length_for_display(width, height, len(self.chain)))
        dt = self.next_dt()
        for _ in range(self.ticks_per_frame):
            self.chain.tick(dt)
        points = self.chain.positions()
        self.trace.append(points[-1])
        return points


def animate_live(
    config: Optional[ChainConfig] = None,
    duration: Optional[float] = None,
    save_video: bool = False,
    video_filename: str = 'chain_pendulum.mp4',
    width: int = 600,
    height: int = 500,
    fps: int = 60,
):
    """
    Animate a chain in real time.

    Parameters
    ----------
    config : ChainConfig | None
        Chain parameters (defaults to ``ChainConfig()``).
    duration : float | None
        Length of the animation in seconds; None runs until the window is closed.
    save_video : bool
        Write the animation to ``video_filename`` instead of showing it (needs ``duration``).
    video_filename : str
        Output video filename.
    width, height : int
        Display size in pixels; arm lengths are derived from it every frame.
    fps : int
        Frame rate of the animation.
    """
    config = config or ChainConfig()
    if save_video and duration is None:
        raise ValueError("save_video needs a finite duration")

    live = LiveChain(config, fps=fps)
    dpi = 100
    fig = plt.figure(figsize=(width / dpi, height / dpi), dpi=dpi, facecolor='white')
    ax = fig.add_axes([0, 0, 1, 1])
    ax.set_facecolor('white')
    ax.set_aspect('equal')
    ax.axis('off')
    ax.set_xlim(-width / 2, width / 2)
    ax.set_ylim(-height / 2, height / 2)

    trace_plot, = ax.plot([], [], 's', markersize=TRACE_SIZE, color=TRACE_COLOR, zorder=1)
    links = LineCollection([], colors=link_colors(config.link_count), capstyle='butt', zorder=2)
    ax.add_collection(links)

    def init():
        """Initialize animation"""
        trace_plot.set_data([], [])
        links.set_segments([])
        return [trace_plot, links]

    def update(frame):
        """Advance the chain and redraw it"""
        fig_width, fig_height = fig.get_size_inches() * fig.dpi
        points = live.advance(fig_width, fig_height)
        links.set_segments(link_segments(points[:, 0], points[:, 1]))
        links.set_linewidth(live.chain[0].arm_length / config.size_scale * 72.0 / fig.dpi)
        trace = live.trace.as_array()
        trace_plot.set_data(trace[:, 0], trace[:, 1])
        return [trace_plot, links]

    frames = int(duration * fps) if duration is not None else None
    anim = FuncAnimation(
        fig,
        update,
        frames=frames,
        init_func=init,
        blit=True,
        interval=1000 / fps,
        cache_frame_data=False,
    )

    if save_video:
        print(f"Saving video to {video_filename}...")
        writer = FFMpegWriter(fps=fps, bitrate=5000, extra_args=['-vcodec', 'libx264'])
        anim.save(video_filename, writer=writer, dpi=dpi)
        print("Video saved successfully!")
        plt.close(fig)
    else:
        print("Displaying animation (close window to exit)...")
        plt.show()
    return live


def animate_results(
    results_file: str = 'simulation_results.npz',
    save_video: bool = True,
    video_filename: str = 'pendulum_animation.mp4',
    playback_speed: float = 1.0,
    trace_points: int = 500,
):
    """
    Replay an ensemble saved by ``simulator.simulate_ensemble``.

    Links are drawn in alternating colours like the live view, and the last
    ``trace_points`` end-effector positions of every instance are traced.

    Parameters
    ----------
    results_file : str
        Path of the saved results.
    save_video : bool
        Whether to save animation as video.
    video_filename : str
        Output video filename.
    playback_speed : float
        Relative playback multiplier (>1 faster, <1 slower).
    trace_points : int
        Length of the end-effector trace in frames.
    """

    print("Loading simulation results...")
    try:
        data = np.load(results_file)
        t = data['t']
        x = data['x']
        y = data['y']
        N = int(data['N'])
        M = int(data['M'])
        arm_length = float(data['arm_length'])
    except FileNotFoundError:
        print(f"Error: {results_file} not found. Please run simulator.py first.")
        return

    Frame = len(t)
    reach = N * arm_length * 1.1
    base_fps = 1.0 / (t[1] - t[0]) if Frame > 1 else 60.0
    render_fps = max(1, int(round(base_fps * max(playback_speed, 1e-3))))
    print(f"Loaded {Frame} frames for {M} chains with {N} links")

    dpi = 100
    fig = plt.figure(figsize=(8, 8), dpi=dpi, facecolor='white')
    ax = fig.add_axes([0, 0, 1, 1])
    ax.set_aspect('equal')
    ax.axis('off')
    ax.set_xlim(-reach, reach)
    ax.set_ylim(-reach, reach)

    trace_plot, = ax.plot([], [], 's', markersize=TRACE_SIZE, color=TRACE_COLOR, zorder=1)
    links = LineCollection([], colors=link_colors(N, M), linewidth=2, zorder=2)
    ax.add_collection(links)

    def init():
        """Initialize animation"""
        trace_plot.set_data([], [])
        links.set_segments([])
        return [trace_plot, links]

    def update(frame):
        """Update animation frame"""
        links.set_segments(link_segments(x[frame], y[frame]))
        start = max(0, frame + 1 - trace_points)
        trace_plot.set_data(x[start:frame + 1, -1, :].ravel(), y[start:frame + 1, -1, :].ravel())

        if (frame + 1) % 30 == 0:
            print(f'Animating: {100 * (frame + 1) / Frame:.1f}%', end='\r')
        return [trace_plot, links]

    print(f"Creating animation at {render_fps} fps...")
    anim = FuncAnimation(
        fig,
        update,
        frames=Frame,
        init_func=init,
        blit=True,
        interval=1000 / render_fps,
    )

    if save_video:
        print(f"Saving video to {video_filename}...")
        writer = FFMpegWriter(fps=render_fps, bitrate=5000, extra_args=['-vcodec', 'libx264'])
        anim.save(video_filename, writer=writer, dpi=dpi)
        print("Video saved successfully!")
    else:
        print("Displaying animation (close window to exit)...")
        plt.show()

    plt.close(fig)
    return anim


if __name__ == '__main__':
    # Show the default ten-link chain
    animate_live(ChainConfig())
