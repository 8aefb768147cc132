LISTING_STATES = [
    "active", "pending_approval", "approved",
    "collected", "distributed", "fallback",
]

TERMINAL_STATES = {"distributed", "fallback"}
CLAIMABLE_STATES = {"active", "pending_approval"}
SWEEPABLE_STATES = {"active", "pending_approval"}

# (src, dst) -> which party of the listing may drive it
TRANSITIONS = {
    ("active",           "pending_approval"): {"actors": ["receiver"]},
    ("pending_approval", "pending_approval"): {"actors": ["receiver"]},

    ("active",           "approved"):         {"actors": ["donor"]},
    ("pending_approval", "approved"):         {"actors": ["donor"]},
    ("collected",        "distributed"):      {"actors": ["donor"]},
    ("approved",         "distributed"):      {"actors": ["donor"]},

    ("approved",         "collected"):        {"actors": ["claimant"]},

    ("active",           "fallback"):         {"actors": ["system"]},
    ("pending_approval", "fallback"):         {"actors": ["system"]},
}

def can_transition(src: str, dst: str, actor_kind: str) -> bool:
    rule = TRANSITIONS.get((src, dst))
    if not rule:
        return False
    return actor_kind in rule["actors"]
