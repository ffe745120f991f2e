"""Debug visualization utilities for border cropping."""

from __future__ import annotations

import shutil
from pathlib import Path

import cv2
import numpy as np


def _to_bgr(img: np.ndarray) -> np.ndarray:
    """Convert an RGB, grey or float image to 8-bit BGR for saving."""
    img = np.asarray(img)
    if img.dtype != np.uint8:
        img = img.astype(np.float64)
        peak = 1.0 if img.size and img.max() <= 1 else 255.0
        img = np.clip(img / peak * 255, 0, 255).astype(np.uint8)
    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)
    if img.shape[2] == 1:
        return cv2.cvtColor(img[:, :, 0], cv2.COLOR_GRAY2BGR)
    return cv2.cvtColor(np.ascontiguousarray(img[:, :, :3]), cv2.COLOR_RGB2BGR)


class DebugVisualizer:
    """Saves debug images at each step of border cropping."""

    def __init__(self, output_dir: str | Path):
        self.output_dir = Path(output_dir)
        if self.output_dir.exists():
            # Backup existing debug dir before cleaning
            backup_dir = self.output_dir.with_suffix(".bak")
            if backup_dir.exists():
                shutil.rmtree(backup_dir)
            self.output_dir.rename(backup_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.step = 0

    def _save(self, name: str, img: np.ndarray):
        self.step += 1
        filename = f"{self.step:02d}_{name}.png"
        cv2.imwrite(str(self.output_dir / filename), _to_bgr(img))

    def save_input(self, img: np.ndarray):
        """Save the image being cropped (first frame)."""
        self._save("input", img)

    def save_content_mask(self, mask: np.ndarray, lines: tuple[int, int, int, int]):
        """Save the content mask with the detected crop lines.

        Args:
            mask: Boolean rows x cols mask, True where content differs from background
            lines: Inclusive (top, bottom, left, right) crop lines
        """
        vis = np.where(mask, 255, 0).astype(np.uint8)
        vis = cv2.cvtColor(vis, cv2.COLOR_GRAY2BGR)
        top, bottom, left, right = lines
        cv2.rectangle(vis, (left, top), (right, bottom), (0, 0, 255), 1)
        self._save_bgr("content_mask", vis)

    def save_profiles(self, mask: np.ndarray, lines: tuple[int, int, int, int]):
        """Save plots of the content count per row and per column with the crop lines."""
        import matplotlib.pyplot as plt
        import pandas as pd

        top, bottom, left, right = lines
        rows = pd.DataFrame({"row": np.arange(mask.shape[0]), "count": mask.sum(axis=1)})
        cols = pd.DataFrame({"column": np.arange(mask.shape[1]), "count": mask.sum(axis=0)})

        fig, axes = plt.subplots(2, 1, figsize=(10, 6))

        # Column profile
        axes[0].fill_between(cols["column"], cols["count"], alpha=0.7)
        axes[0].axvline(x=left, color="blue", linestyle="--", label=f"left={left}")
        axes[0].axvline(x=right, color="red", linestyle="--", label=f"right={right}")
        axes[0].set_xlabel("Column")
        axes[0].set_ylabel("Content pixels")
        axes[0].set_xlim(0, max(mask.shape[1] - 1, 1))
        axes[0].legend()

        # Row profile
        axes[1].fill_between(rows["row"], rows["count"], alpha=0.7, color="green")
        axes[1].axvline(x=top, color="blue", linestyle="--", label=f"top={top}")
        axes[1].axvline(x=bottom, color="red", linestyle="--", label=f"bottom={bottom}")
        axes[1].set_xlabel("Row")
        axes[1].set_ylabel("Content pixels")
        axes[1].set_xlim(0, max(mask.shape[0] - 1, 1))
        axes[1].legend()

        fig.tight_layout()
        self.step += 1
        fig.savefig(self.output_dir / f"{self.step:02d}_profiles.png", dpi=100)
        plt.close(fig)

    def save_result(self, img: np.ndarray):
        """Save the cropped image (first frame)."""
        if img.ndim == 4:
            img = img[:, :, :, 0]
        self._save("result", img)

    def _save_bgr(self, name: str, img: np.ndarray):
        self.step += 1
        cv2.imwrite(str(self.output_dir / f"{self.step:02d}_{name}.png"), img)
