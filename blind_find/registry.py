"""
Hub registrations and the Merkle tree that indexes them.

A hub registers by signing H("REGISTER_NEW_HUB", admin_address) with its
key. The registration's leaf value is a scalar, so the tree, its proofs
and its roots can be passed straight into the proving circuits as field
elements.

The tree has a fixed depth and is zero-padded: an empty leaf is 0 and
an empty subtree at height h hashes to `zero_hashes[h]`. Only nodes on
inserted paths are stored.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .config import DOMAIN_SEPARATORS, REGISTRY_TREE_LEVELS
from .exceptions import MalformedInput
from .security import hash_to_scalar
from .signing import Keypair, Signature, sign, verify
from .smp.group import Point


def register_hub_msg_hash(admin_address: int) -> int:
    return hash_to_scalar(DOMAIN_SEPARATORS["register_hub"], admin_address)


def join_hub_msg_hash(user_pubkey: Point, hub_pubkey: Point) -> int:
    return hash_to_scalar(DOMAIN_SEPARATORS["join_hub"], user_pubkey, hub_pubkey)


# ============================================================================
# HUB REGISTRY
# ============================================================================


@dataclass(frozen=True)
class HubRegistry:
    """
    A hub's signed self-registration.

    Attributes:
        pubkey: Hub public key
        sig: Hub signature over `register_hub_msg_hash(admin_address)`
        admin_address: Address of the registry admin, as an integer
    """

    pubkey: Point
    sig: Signature
    admin_address: int

    @classmethod
    def create(cls, keypair: Keypair, admin_address: int) -> "HubRegistry":
        sig = sign(keypair.private_key, register_hub_msg_hash(admin_address))
        return cls(pubkey=keypair.public_key, sig=sig, admin_address=admin_address)

    def verify(self) -> bool:
        return verify(self.pubkey, register_hub_msg_hash(self.admin_address), self.sig)

    def hash(self) -> int:
        """Leaf value of this registration in the registry tree."""
        return hash_to_scalar(
            DOMAIN_SEPARATORS["merkle_leaf"],
            self.pubkey,
            self.sig.r8,
            self.sig.s,
            self.admin_address,
        )

    def to_obj(self) -> Dict[str, Any]:
        x, y = self.pubkey.to_affine()
        r8x, r8y = self.sig.r8.to_affine()
        return {
            "pubkey": [str(x), str(y)],
            "sig": {"R8": [str(r8x), str(r8y)], "S": str(self.sig.s)},
            "adminAddress": str(self.admin_address),
        }

    @classmethod
    def from_obj(cls, obj: Dict[str, Any]) -> "HubRegistry":
        try:
            pubkey = Point.from_affine(*(int(v) for v in obj["pubkey"]))
            r8 = Point.from_affine(*(int(v) for v in obj["sig"]["R8"]))
            s = int(obj["sig"]["S"])
            admin_address = int(obj["adminAddress"])
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedInput(f"invalid hub registry object: {e}") from e
        return cls(
            pubkey=pubkey, sig=Signature(r8=r8, s=s), admin_address=admin_address
        )


@dataclass(frozen=True)
class SignedJoinMsg:
    """A user's request to join a hub, countersigned by the hub."""

    user_pubkey: Point
    user_sig: Signature
    hub_pubkey: Point
    hub_sig: Signature

    @classmethod
    def create(cls, user: Keypair, hub: Keypair) -> "SignedJoinMsg":
        msg = join_hub_msg_hash(user.public_key, hub.public_key)
        return cls(
            user_pubkey=user.public_key,
            user_sig=sign(user.private_key, msg),
            hub_pubkey=hub.public_key,
            hub_sig=sign(hub.private_key, msg),
        )

    def verify(self) -> bool:
        msg = join_hub_msg_hash(self.user_pubkey, self.hub_pubkey)
        return verify(self.user_pubkey, msg, self.user_sig) and verify(
            self.hub_pubkey, msg, self.hub_sig
        )


# ============================================================================
# MERKLE TREE
# ============================================================================


def hash_node(left: int, right: int) -> int:
    """Hash two child nodes. Fixed left||right order, no sorting."""
    return hash_to_scalar(DOMAIN_SEPARATORS["merkle_node"], left, right)


def _zero_hashes(levels: int) -> List[int]:
    zeros = [0]
    for _ in range(levels):
        zeros.append(hash_node(zeros[-1], zeros[-1]))
    return zeros


@dataclass(frozen=True)
class MerkleProof:
    """
    Membership witness for one leaf.

    `path_indices[i]` is 1 when the node on the path at height i is a
    right child, so its sibling `path_elements[i]` sits on the left.
    """

    path_elements: List[int]
    path_indices: List[int]
    root: int
    leaf: int

    @property
    def depth(self) -> int:
        return len(self.path_elements)

    def verify(self) -> bool:
        if len(self.path_indices) != len(self.path_elements):
            return False
        current = self.leaf
        for sibling, index in zip(self.path_elements, self.path_indices):
            if index == 1:
                current = hash_node(sibling, current)
            elif index == 0:
                current = hash_node(current, sibling)
            else:
                return False
        return current == self.root


class HubRegistryTree:
    """
    Fixed-depth binary Merkle tree of registry leaves.

    Example:
        >>> tree = HubRegistryTree(levels=4)
        >>> index = tree.insert(registry.hash())
        >>> proof = tree.gen_proof(index)
        >>> assert proof.verify() and proof.root == tree.root
    """

    def __init__(self, levels: int = REGISTRY_TREE_LEVELS):
        if levels < 1:
            raise ValueError("tree needs at least one level")
        self.levels = levels
        self._zeros = _zero_hashes(levels)
        # _layers[h] holds the non-default nodes at height h, left-packed
        self._layers: List[List[int]] = [[] for _ in range(levels + 1)]

    @property
    def capacity(self) -> int:
        return 2 ** self.levels

    def __len__(self) -> int:
        return len(self._layers[0])

    def _node(self, height: int, index: int) -> int:
        layer = self._layers[height]
        if index < len(layer):
            return layer[index]
        return self._zeros[height]

    def _set(self, height: int, index: int, value: int) -> None:
        layer = self._layers[height]
        if index < len(layer):
            layer[index] = value
        else:
            layer.append(value)

    def insert(self, leaf: int) -> int:
        """Append `leaf` and return its index."""
        index = len(self)
        if index >= self.capacity:
            raise ValueError(f"tree is full ({self.capacity} leaves)")

        self._set(0, index, leaf)
        node = index
        for height in range(self.levels):
            parent = node >> 1
            self._set(
                height + 1,
                parent,
                hash_node(
                    self._node(height, parent * 2),
                    self._node(height, parent * 2 + 1),
                ),
            )
            node = parent
        return index

    def insert_registry(self, registry: HubRegistry) -> int:
        return self.insert(registry.hash())

    @property
    def root(self) -> int:
        return self._node(self.levels, 0)

    def index_of(self, leaf: int) -> Optional[int]:
        try:
            return self._layers[0].index(leaf)
        except ValueError:
            return None

    def gen_proof(self, index: int) -> MerkleProof:
        if not 0 <= index < len(self):
            raise IndexError(f"no leaf at index {index}")

        elements = []
        indices = []
        node = index
        for height in range(self.levels):
            elements.append(self._node(height, node ^ 1))
            indices.append(node & 1)
            node >>= 1
        return MerkleProof(
            path_elements=elements,
            path_indices=indices,
            root=self.root,
            leaf=self._node(0, index),
        )
