"""
Lua Scripts for the Session Write-Lock Protocol

Every operation whose effect depends on who holds the write lock runs as a
single server-side script, so the identifier comparison and the mutation it
guards happen in one atomic step. Redis offers atomic single-key commands but
no general transactions with conditions; scripts fill that gap.

Key layout (KEYS, same order for every script):
    KEYS[1]  data key      string, opaque payload, TTL = session timeout
    KEYS[2]  internal key  hash, field 'timeout' = session timeout in seconds
    KEYS[3]  lock key      string, lock identifier, TTL = lock timeout

Lock identifiers are "<acquired_at_micros>:<token>". Scripts only ever read
the numeric prefix; an identifier without one is treated as infinitely old.
"""

from __future__ import annotations

from typing import Dict, Final

# -----------------------------------------------------------------------------
# Take the write lock, overriding a stale holder.
#
# ARGV[1] new lock identifier
# ARGV[2] acquire time in microseconds since the epoch
# ARGV[3] lock timeout in seconds
#
# Returns {acquired, lock_id, has_data, data, timeout, superseded_lock_id}.
# Staleness is inclusive: a lock whose age equals the lock timeout is stale,
# which matches the lock key's own TTL running out at the same instant.
# The stale identifier is overwritten by the SET below, inside the same
# script that judged it stale.
# -----------------------------------------------------------------------------
TAKE_WRITE_LOCK_SCRIPT: Final[str] = """
local now = tonumber(ARGV[2])
local lock_timeout = tonumber(ARGV[3])
local raw_timeout = redis.call('HGET', KEYS[2], 'timeout')
local timeout = tonumber(raw_timeout or '-1') or -1

local held = redis.call('GET', KEYS[3])
if held then
    local acquired_at = string.match(held, '^(%d+):')
    if acquired_at and now - tonumber(acquired_at) < lock_timeout * 1000000 then
        return {0, held, 0, '', timeout, ''}
    end
else
    held = ''
end

redis.call('SET', KEYS[3], ARGV[1], 'EX', ARGV[3])

local data = redis.call('GET', KEYS[1])
local has_data = 1
if not data then
    data = ''
    has_data = 0
end

if timeout > 0 then
    redis.call('EXPIRE', KEYS[1], raw_timeout)
    redis.call('EXPIRE', KEYS[2], raw_timeout)
end

return {1, ARGV[1], has_data, data, timeout, held}
"""

# -----------------------------------------------------------------------------
# Release the lock if the identifier matches; always refresh record TTL.
#
# ARGV[1] caller's lock identifier
# ARGV[2] session timeout in seconds
#
# Returns 1 when the lock was released, 0 when it belonged to someone else.
# -----------------------------------------------------------------------------
RELEASE_WRITE_LOCK_SCRIPT: Final[str] = """
local released = 0
if redis.call('GET', KEYS[3]) == ARGV[1] then
    redis.call('DEL', KEYS[3])
    released = 1
end
redis.call('EXPIRE', KEYS[1], ARGV[2])
redis.call('EXPIRE', KEYS[2], ARGV[2])
return released
"""

# -----------------------------------------------------------------------------
# Delete the record and release the lock if the identifier matches.
#
# ARGV[1] caller's lock identifier
# -----------------------------------------------------------------------------
REMOVE_AND_RELEASE_SCRIPT: Final[str] = """
if redis.call('GET', KEYS[3]) == ARGV[1] then
    redis.call('DEL', KEYS[1], KEYS[2], KEYS[3])
    return 1
end
return 0
"""

# -----------------------------------------------------------------------------
# Write the payload, store the timeout and release the lock if the
# identifier matches. Nothing is written on mismatch.
#
# ARGV[1] caller's lock identifier
# ARGV[2] payload
# ARGV[3] session timeout in seconds
# -----------------------------------------------------------------------------
UPDATE_AND_RELEASE_SCRIPT: Final[str] = """
if redis.call('GET', KEYS[3]) ~= ARGV[1] then
    return 0
end
redis.call('SET', KEYS[1], ARGV[2], 'EX', ARGV[3])
redis.call('HSET', KEYS[2], 'timeout', ARGV[3])
redis.call('EXPIRE', KEYS[2], ARGV[3])
redis.call('DEL', KEYS[3])
return 1
"""

TAKE_WRITE_LOCK: Final[str] = "take_write_lock"
RELEASE_WRITE_LOCK: Final[str] = "release_write_lock"
REMOVE_AND_RELEASE: Final[str] = "remove_and_release"
UPDATE_AND_RELEASE: Final[str] = "update_and_release"

LOCK_SCRIPTS: Final[Dict[str, str]] = {
    TAKE_WRITE_LOCK: TAKE_WRITE_LOCK_SCRIPT,
    RELEASE_WRITE_LOCK: RELEASE_WRITE_LOCK_SCRIPT,
    REMOVE_AND_RELEASE: REMOVE_AND_RELEASE_SCRIPT,
    UPDATE_AND_RELEASE: UPDATE_AND_RELEASE_SCRIPT,
}


__all__ = [
    "LOCK_SCRIPTS",
    "TAKE_WRITE_LOCK",
    "RELEASE_WRITE_LOCK",
    "REMOVE_AND_RELEASE",
    "UPDATE_AND_RELEASE",
]
