"""
Test harness for a bridged Ethereum and Substrate solochain network.

Tracks the resources of a launched network, waits for readiness and
cross-chain events, materializes relayer configs and bootstraps the
solochain's Ethereum light client.
"""
