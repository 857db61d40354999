"""Bundled capability providers, loadable by bare name."""
