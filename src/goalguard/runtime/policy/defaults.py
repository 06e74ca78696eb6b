"""Built-in policy tables.

Rule order is significant: the first matching rule wins, so specific
catastrophic patterns come before the broader risky ones, and the runtime
directory is flagged before the rest of ``.goalguard`` is allowed.
"""

from __future__ import annotations

from goalguard.runtime.policy.models import GuardPolicy, KindPatterns, PolicyRule, Severity

_H = Severity.HIGH_RISK
_W = Severity.WARN
_A = Severity.ALLOWED


def _rules(*rows: tuple[str, Severity, str]) -> list[PolicyRule]:
    return [PolicyRule(pattern=p, severity=s, reason=r) for p, s, r in rows]


def default_shell_rules() -> list[PolicyRule]:
    return _rules(
        ("rm -rf /", _H, "Catastrophic filesystem deletion"),
        ("rm -rf /*", _H, "Catastrophic filesystem deletion"),
        ("rm -rf ~*", _H, "Home directory deletion"),
        ("*:(){ :|:& };:*", _H, "Fork bomb detected"),
        ("*> /dev/sd*", _H, "Direct disk write"),
        ("*dd if=*of=/dev/*", _H, "Direct disk write"),
        ("*mkfs.*", _H, "Filesystem format command"),
        ("*curl*|*sh*", _H, "Remote code execution via curl"),
        ("*wget*|*sh*", _H, "Remote code execution via wget"),
        ("*curl*|*bash*", _H, "Remote code execution via curl"),
        ("*wget*|*bash*", _H, "Remote code execution via wget"),
        ("rm -rf *", _W, "Recursive force delete"),
        ("rm -r *", _W, "Recursive delete"),
        ("*--force*", _W, "Force flag bypasses safety checks"),
        ("git reset --hard*", _W, "Destructive git operation"),
        ("git clean -fd*", _W, "Removes untracked files"),
        ("git push -f*", _W, "Force push can overwrite history"),
        ("npm publish*", _W, "Publishing to a package registry"),
        ("yarn publish*", _W, "Publishing to a package registry"),
        ("pnpm publish*", _W, "Publishing to a package registry"),
        ("twine upload*", _W, "Publishing to a package registry"),
        ("chmod 777*", _W, "Overly permissive file permissions"),
        ("*sudo *", _W, "Elevated privileges requested"),
        ("docker rm -f*", _W, "Force remove container"),
        ("docker system prune*", _W, "Removes unused Docker resources"),
        ("git status*", _A, "Read-only git operation"),
        ("git diff*", _A, "Read-only git operation"),
        ("git log*", _A, "Read-only git operation"),
        ("git branch*", _A, "Read-only git operation"),
        ("git rev-parse*", _A, "Read-only git operation"),
        ("git show*", _A, "Read-only git operation"),
        ("ls*", _A, "List directory contents"),
        ("pwd", _A, "Print working directory"),
        ("echo *", _A, "Print text"),
        ("cat *", _A, "Read file contents"),
        ("head *", _A, "Read file head"),
        ("tail *", _A, "Read file tail"),
        ("node -v", _A, "Version check"),
        ("npm -v", _A, "Version check"),
        ("pnpm -v", _A, "Version check"),
        ("yarn -v", _A, "Version check"),
        ("python --version", _A, "Version check"),
        ("which *", _A, "Locate command"),
        ("type *", _A, "Describe command"),
        ("goalguard *", _A, "Guardian CLI"),
    )


def default_mcp_rules() -> list[PolicyRule]:
    return _rules(("goalguard/*", _A, "Guardian capability tools"))


def default_read_rules() -> list[PolicyRule]:
    return _rules(
        ("**/.env", _H, "Environment secrets"),
        ("**/.env.*", _H, "Environment secrets"),
        ("**/*.pem", _H, "Private key file"),
        ("**/*.key", _H, "Private key file"),
        (".git/**", _H, "Git internals"),
        (".goalguard/runtime/**", _H, "Guardian runtime data (permits, checks, audit log)"),
        (".goalguard/**", _A, "Guardian configuration and state"),
    )


def default_write_rules() -> list[PolicyRule]:
    return _rules(
        (".git/**", _H, "Git internals"),
        (".goalguard/runtime/**", _H, "Guardian runtime data (permits, checks, audit log)"),
        (".goalguard/state.json", _W, "Edit state through actions, not by hand"),
        (".goalguard/actions.jsonl", _W, "Action log is append-only"),
        ("**/.env", _W, "Environment secrets"),
    )


def default_always_allow() -> KindPatterns:
    return KindPatterns(
        shell=["git status*", "git diff*", "git rev-parse*", "ls*", "pwd"],
        mcp=["goalguard/*"],
        read=[".goalguard/contract.json", ".goalguard/state.json"],
    )


def default_always_deny() -> KindPatterns:
    return KindPatterns(
        shell=["rm -rf /", "rm -rf /*", "*curl*|*sh*", "*wget*|*sh*"],
        read=[".goalguard/runtime/**", ".git/**", "**/.env", "**/.env.*", "**/*.pem", "**/*.key"],
    )


def default_policy() -> GuardPolicy:
    """The policy used when no policy file exists."""
    return GuardPolicy(
        always_allow=default_always_allow(),
        always_deny=default_always_deny(),
        shell_rules=default_shell_rules(),
        mcp_rules=default_mcp_rules(),
        read_rules=default_read_rules(),
        write_rules=default_write_rules(),
    )
