"""
Shared fixtures: in-memory stand-ins for the container runtime and for the
cluster's admin namespace.
"""

import itertools
import threading
from contextlib import contextmanager

import pytest

from shardedcluster.cluster.address import Address
from shardedcluster.cluster.controller import ClusterConfig, ClusterController
from shardedcluster.cluster.convergence import PollConfig


class FakeProcess:
    """Process handle recording its launch command and lifecycle calls."""
    
    def __init__(self, name, client_port, events, fail_on_start=False):
        self.name = name
        self.named_address = Address(name, 27017)
        self.client_address = Address("localhost", client_port)
        self.command = []
        self.start_calls = 0
        self.stop_calls = 0
        self.running = False
        self.fail_on_start = fail_on_start
        self._events = events
    
    def set_command(self, *args):
        self.command = list(args)
    
    def start(self):
        if self.fail_on_start:
            raise RuntimeError(f"{self.name} failed to start")
        self.start_calls += 1
        self.running = True
        self._events.append(("start", self.name))
    
    def stop(self):
        self.stop_calls += 1
        self.running = False
        self._events.append(("stop", self.name))


class FakeReplicaSet:
    """Replica set handle starting and stopping its members together."""
    
    def __init__(self, name, members, events, config_server=False):
        self.name = name
        self.members = members
        self.config_server = config_server
        self.start_calls = 0
        self.stop_calls = 0
        self.running = False
        self._events = events
    
    def start(self):
        self.start_calls += 1
        self.running = True
        self._events.append(("start", self.name))
    
    def stop(self):
        self.stop_calls += 1
        self.running = False
        self._events.append(("stop", self.name))


class FakeNetwork:
    """Network handle counting close() calls."""
    
    def __init__(self):
        self.close_calls = 0
    
    def close(self):
        self.close_calls += 1


class FakeAdmin:
    """
    Eventually-consistent admin namespace of a sharded cluster.
    
    Added shards report state 0 for `activate_after` listShards calls before
    turning active; removeShard reports "started", then "ongoing" until
    `drain_polls` calls have been made, then "completed".
    """
    
    def __init__(self, activate_after=1, drain_polls=2):
        self.activate_after = activate_after
        self.drain_polls = drain_polls
        self.never_activate = False
        self.never_drain = False
        
        self.shards = {}
        self.commands = []
        self.connection_strings = []
        self.open_channels = 0
        self._pending_polls = {}
        self._drain_calls = {}
        self._lock = threading.Lock()
    
    @contextmanager
    def __call__(self, connection_string):
        self.connection_strings.append(connection_string)
        self.open_channels += 1
        try:
            yield self
        finally:
            self.open_channels -= 1
    
    def command(self, name, value=1, **params):
        with self._lock:
            self.commands.append((name, value, params))
            handler = getattr(self, f"_{name}")
            return handler(value, **params)
    
    def active_shards(self):
        return sorted(name for name, record in self.shards.items() if record["state"] == 1)
    
    def _addShard(self, address):
        name = address.split("/", 1)[0]
        self.shards[name] = {"_id": name, "host": address, "state": 0}
        self._pending_polls[name] = self.activate_after
        return {"ok": 1, "shardAdded": name}
    
    def _listShards(self, value):
        for name, remaining in list(self._pending_polls.items()):
            if self.never_activate:
                continue
            if remaining <= 0:
                self.shards[name]["state"] = 1
                del self._pending_polls[name]
            else:
                self._pending_polls[name] = remaining - 1
        return {"ok": 1, "shards": [dict(record) for record in self.shards.values()]}
    
    def _removeShard(self, name):
        calls = self._drain_calls.get(name, 0)
        self._drain_calls[name] = calls + 1
        
        if calls == 0:
            return {"ok": 1, "state": "started", "shard": name}
        if self.never_drain or calls < self.drain_polls:
            return {"ok": 1, "state": "ongoing", "shard": name}
        
        self.shards.pop(name, None)
        return {"ok": 1, "state": "completed", "shard": name}
    
    def _enableSharding(self, database):
        return {"ok": 1}
    
    def _shardCollection(self, namespace, key=None):
        return {"ok": 1, "collectionsharded": namespace}


@pytest.fixture
def events():
    """Ordered record of start/stop calls across all handles."""
    return []


@pytest.fixture
def processes():
    """Every FakeProcess created, keyed by name."""
    return {}


@pytest.fixture
def replica_sets():
    """Every FakeReplicaSet created, keyed by name."""
    return {}


@pytest.fixture
def network():
    return FakeNetwork()


@pytest.fixture
def ports():
    return itertools.count(30001)


@pytest.fixture
def process_builder(events, processes, ports):
    """Runtime builder for single processes."""
    def build(network, name):
        process = FakeProcess(name, next(ports), events)
        processes[name] = process
        return process
    return build


@pytest.fixture
def replica_set_builder(events, processes, replica_sets, ports):
    """Runtime builder for replica sets."""
    def build(network, namespace, name, member_count, config_server):
        members = []
        for i in range(member_count):
            member = FakeProcess(f"{namespace}{i}", next(ports), events)
            processes[member.name] = member
            members.append(member)
        
        replica_set = FakeReplicaSet(name, members, events, config_server=config_server)
        replica_sets[name] = replica_set
        return replica_set
    return build


@pytest.fixture
def fake_admin():
    return FakeAdmin()


@pytest.fixture
def fast_poll():
    """Poll policy that converges or times out within milliseconds."""
    return PollConfig(poll_interval_ms=1, timeout_ms=100)


@pytest.fixture
def make_cluster(network, replica_set_builder, process_builder, fake_admin, fast_poll):
    """Factory for controllers wired to the fakes."""
    def make(**overrides):
        overrides.setdefault("membership", fast_poll)
        return ClusterController(
            network=network,
            replica_set_builder=replica_set_builder,
            process_builder=process_builder,
            config=ClusterConfig(**overrides),
            admin_channel_factory=fake_admin,
        )
    return make
