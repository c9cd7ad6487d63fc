"""Audio preparation: decoding, silence trimming and chunk segmentation."""
