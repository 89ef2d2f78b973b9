"""BundleForge core: hashing, stamps, references, cancellation and the
build pipeline that ties the stages together.
"""
