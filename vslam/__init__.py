"""Visual SLAM building blocks: Lie groups, cameras, fitting, pose graphs and mapping."""

__version__ = "0.1.0"