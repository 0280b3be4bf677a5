"""
Engine-wide constants for the battle-royale results engine.

This module collects the telemetry field names, MVP weights and schedule
values used across ingestion and ranking.
"""

class TelemetryConstants:
    """Field names of the post-match telemetry export."""
    
    # Per-player counters, wire name -> stat column
    PLAYER_COUNTERS = {
        'killNum': 'kill_num',
        'killNumBeforeDie': 'kill_num_before_die',
        'gotAirDropNum': 'got_air_drop_num',
        'maxKillDistance': 'max_kill_distance',
        'damage': 'damage',
        'killNumInVehicle': 'kill_num_in_vehicle',
        'killNumByGrenade': 'kill_num_by_grenade',
        'AIKillNum': 'ai_kill_num',
        'BossKillNum': 'boss_kill_num',
        'rank': 'rank',
        'inDamage': 'in_damage',
        'heal': 'heal',
        'headShotNum': 'head_shot_num',
        'survivalTime': 'survival_time',
        'driveDistance': 'drive_distance',
        'marchDistance': 'march_distance',
        'assists': 'assists',
        'knockouts': 'knockouts',
        'rescueTimes': 'rescue_times',
        'useSmokeGrenadeNum': 'use_smoke_grenade_num',
        'useFragGrenadeNum': 'use_frag_grenade_num',
        'useBurnGrenadeNum': 'use_burn_grenade_num',
        'useFlashGrenadeNum': 'use_flash_grenade_num',
        'PoisonTotalDamage': 'poison_total_damage',
        'UseSelfRescueTime': 'use_self_rescue_time',
        'UseEmergencyCallTime': 'use_emergency_call_time',
    }
    
    # Counters carried as floats; the rest are whole numbers
    FLOAT_COUNTERS = frozenset({
        'max_kill_distance', 'damage', 'in_damage', 'heal', 'survival_time',
        'drive_distance', 'march_distance', 'poison_total_damage',
    })
    
    # Team folding rules; every other counter is summed
    MAX_COUNTERS = frozenset({'max_kill_distance'})
    MIN_COUNTERS = frozenset({'rank'})
    
    REQUIRED_TEAM_FIELDS = ('teamId', 'teamName', 'killNum')
    
    GLOBAL_TIMING_FIELDS = ('GameStartTime', 'FightingStartTime', 'FinishedStartTime', 'CurrentTime')

class MvpConstants:
    """Weights and display scales of the MVP rating."""
    
    # Weights must sum to 1.0
    SURVIVAL_WEIGHT = 0.4
    DAMAGE_WEIGHT = 0.4
    KILL_WEIGHT = 0.2
    
    SINGLE_MATCH_SCALE = 100
    CUMULATIVE_SCALE = 10
    
    DECIMALS = 3

class ScheduleConstants:
    """Constants for schedules and lobby groups."""
    
    MAPS = ("Erangel", "Miramar", "Sanhok", "Vikendi", "Karakin", "Livik")
    
    # Combined lobby key and display name joiners
    GROUP_KEY_SEPARATOR = ";"
    GROUP_NAME_SEPARATOR = " vs "
