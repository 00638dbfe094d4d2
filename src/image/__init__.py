"""
Raster image handling.

- codec: Header-sniffing decode and extension-driven encode
- colorspace: Luma and HSV conversions
- filters: Convolution, Sobel and Canny stages
- raster: RasterBuffer, the RGBA value type shared by all components
"""
