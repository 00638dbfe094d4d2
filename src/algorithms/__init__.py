"""
Vision components operating on RasterBuffer images.

- feature_extraction / keypoints: FeatureExtractor
- comparison / hashing: ImageComparator
- detection / labeling: ObjectDetector
- generation / noise: ImageGenerator
"""
