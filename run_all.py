"""
Run complete chain-pendulum pipeline
"""

import numpy as np

import simulator
import animator
from config import ChainConfig

def main():
    """
    Complete pipeline:
    1. Build the chain configuration
    2. Run the ensemble simulation
    3. Create animation/video
    """

    print("=" * 60)
    print("CHAIN-PENDULUM SIMULATION")
    print("=" * 60)
    print()

    # Configuration
    N = 10              # Number of links
    T = 30              # Simulation time (seconds)
    M = 20              # Number of chain instances
    perturbation = 1e-6  # Initial angle perturbation
    damping = 0.992     # Per-tick speed multiplier, None disables damping
    live = False        # Set True to watch a single chain in real time instead

    config = ChainConfig(
        link_count=N,
        base_angle=3.0 * np.pi / 2.0,
        angle_step=0.3 * np.pi,
        damping=damping,
    )

    print(f"Configuration:")
    print(f"  N (links): {N}")
    print(f"  Duration: {T} seconds")
    print(f"  Number of instances: {M}")
    print(f"  Perturbation: {perturbation:.2e}")
    print(f"  Damping: {damping}")
    print(f"  Time step: {config.time_step:.5f} s")
    print()

    if live:
        animator.animate_live(config)
        return

    # Step 1: Run simulation
    print("STEP 1: Running chain simulation...")
    print("-" * 60)
    simulator.simulate_ensemble(config, duration=T, M=M, perturbation=perturbation)
    print()

    # Step 2: Create animation
    print("STEP 2: Creating animation...")
    print("-" * 60)
    animator.animate_results(
        save_video=True,
        video_filename=f'{N}_chain_{M}_instances.mp4',
    )
    print()

    print("=" * 60)
    print("COMPLETE!")
    print("=" * 60)


if __name__ == '__main__':
    main()
