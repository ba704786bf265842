"""
Image Operation Pipeline

For every configured operation:
1. Load - reopen the downloaded source
2. Transform - registry lookup + transform
3. Post-process - strip metadata, format, quality
4. Emit - write locally and publish

Tiling splits the source into a grid of sub-images and can merge them back.
"""
