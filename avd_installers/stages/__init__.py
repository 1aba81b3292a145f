"""The five provisioning stages: resolve, acquire, apply, verify, reclaim."""
