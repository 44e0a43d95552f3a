# vistrack

Feature tracklet bookkeeping, epipolar geometry and image preprocessing
for monocular and stereo visual odometry.

You supply a matcher that returns correspondences between consecutive
frames. vistrack takes those correspondences and keeps a set of tracklets
up to date. It also has helpers for the steps around tracking: brightness
correction, cropping and resizing with matching intrinsics, label dilation,
turning disparity into point clouds, building matches messages and drawing
tracklets.

## Installation

```
pip install vistrack
```

The `test` extra adds the test dependencies:

```
pip install "vistrack[test]"
```

## Modules

- `vistrack.tracklet`: `ImagePoint`, `WorldPoint`, `Match`, `StereoMatch`,
  `Tracklet` and `StereoTracklet`. A tracklet is a deque of matches, newest
  first, with a unique `id` and an `age` counted in frames. Mono and stereo
  tracklets number their ids separately.
- `vistrack.tracker`: `Tracker`, a monocular tracker. It works with any
  object that follows the `Matcher` protocol (`configure`, `push_back`,
  `match_features`) and returns `PMatch` correspondences. Its settings are
  held in `TrackerParameters`. The module also has `associate_matches`,
  `select_tracklets` and `to_grayscale`.
- `vistrack.stereo_tracker`: `StereoTracker`, the stereo counterpart. It
  takes a `StereoMatcher` and `StereoTrackerParameters`.
- `vistrack.geometry`: RANSAC estimation of the fundamental matrix
  (`find_fundamental_matrix`, `estimate_fundamental_matrix`), the essential
  matrix (`estimate_essential_matrix`) and the relative rotation and
  translation (`estimate_rot_trans`). It also has `remove_outliers` and
  `bucketing`, which keeps the oldest tracklet in each cell of a grid.
- `vistrack.visualization`: `draw_matches` stacks the left and right image
  of each frame side by side, one frame per row, and circles each tracklet's
  observations in a colour given by `track_color`.
- `vistrack.brightness`: `correct_gamma`, `compute_optimal_gamma`,
  `stretch_hist` and `gamma_correct_frame`.
- `vistrack.disparity`: `DisparityConverter` turns an intensity image and a
  `DisparityImage` into a grid of x, y, z, intensity points. An optional mask
  and an intensity remap table (`build_remap_table`) can be applied.
- `vistrack.labels`: `dilate_labels` grows or shrinks the regions of chosen
  labels in a label image.
- `vistrack.camera_resize`: `resize_image`, `resize_bilinear`,
  `choose_encoding` and `scale_camera_info`. They crop and rescale images
  according to `ResizeParameters` and update a `CameraInfo` to match.
- `vistrack.parameters`: `load`, `load_configuration` and
  `load_matcher_parameters` read a YAML file into `Configuration` and
  `VisoParameters`. Malformed files and out-of-range values raise
  `ParameterError`.
- `vistrack.matches`: `tracklets_to_matches` builds a `MatchesMessage` from
  tracklets and a history of timestamps, newest first.
- `vistrack.pipeline`: `FeatureTrackingPipeline` runs the per-frame sequence:
  scale, Gaussian blur, optional contour mask, tracking, matches message.
  `gaussian_blur` and `contours_to_mask` can be used on their own.

## Example

```python
import numpy as np

from vistrack.tracker import PMatch, Tracker, TrackerParameters


class FixedMatcher:
    """Reports the same feature, index 1, in every frame."""

    def configure(self, params):
        pass

    def push_back(self, image, mask):
        pass

    def match_features(self, method):
        return [PMatch(u1p=10.0, v1p=20.0, i1p=1, u1c=12.0, v1c=21.0, i1c=1)]


tracker = Tracker(FixedMatcher(), TrackerParameters(max_tracklength=3))
frame = np.zeros((48, 64), dtype=np.uint8)
for _ in range(4):
    tracker.push_back(frame)

track = tracker.tracklets[0]
print(len(track), track.age)          # 3 3
long_tracks = tracker.select_tracklets(3)
```

Images must be 8-bit, either grayscale or BGR.

## Configuration file

```yaml
general:
  matches_msg_name: /matches
  image_msg_name: /camera/image
  scale_factor: 0.5
matcher:
  nms_n: 3
  max_track_length: 5
  blur_size: 3
  blur_sigma: 0.8
  method: 0
  refinement: 1
```

```python
from vistrack.parameters import load

config, matcher_params = load("tracking.yaml")
```

When a `general` section is present, `matches_msg_name` and
`image_msg_name` are required. Keys left out of `matcher` keep their
defaults; `multi_stage` and `half_resolution` above 1, `method` above 1 and
`refinement` above 2 are rejected.

## What the package does not do

- It does not detect or match features. Trackers need a matcher object
  that you provide.
- It does not publish or subscribe to messages. `MatchesMessage`,
  `CameraInfo` and `DisparityImage` are plain data classes; moving them
  between processes is up to you.
- It has no command-line program; it is used as a library.

## Running the tests

```
pytest
```