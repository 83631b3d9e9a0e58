# File: bossarena_app/modules/boss_quiz/schemas.py
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from marshmallow import Schema, fields
from pydantic import BaseModel, Field, field_validator

from bossarena_app.utils.time_utils import isoformat_utc

from .logics.modifier_engine import parse_modifiers

DIFFICULTY_CHOICES = ('EASY', 'MEDIUM', 'HARD')
RARITY_CHOICES = ('COMMON', 'UNCOMMON', 'RARE', 'UNIQUE')


# ---------------------------------------------------------------------------
# DTOs
# ---------------------------------------------------------------------------

@dataclass
class AnswerOutcome:
    """Result of one answer submission, as seen by the student."""
    correct: Optional[bool] = None
    damage: int = 0
    is_crit: bool = False
    player_damage: int = 0
    player_hp: int = 0
    player_max_hp: int = 0
    knocked_out: bool = False
    heal_amount: int = 0
    shield_blocked: bool = False
    already_answered: bool = False
    boss_defeated: bool = False
    boss_hp: int = 0
    modifiers_applied: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BossQuizDTO:
    quiz_id: int
    boss_name: str
    description: Optional[str]
    class_type: str
    target_sections: Optional[List[str]]
    max_hp: int
    current_hp: int
    status: str
    is_active: bool
    deadline: Optional[str]
    damage_per_correct: int
    boss_damage: int
    reward_xp: int
    reward_flux: int
    reward_item_rarity: Optional[str]
    rewards_distributed: bool
    defeated_at: Optional[str]
    question_count: int
    modifiers: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_event(cls, quiz, aggregate_damage: int, now: Optional[datetime] = None) -> 'BossQuizDTO':
        modifiers = []
        for modifier in quiz.modifier_list:
            item = modifier.to_dict()
            item['label'] = modifier.display_label
            modifiers.append(item)

        return cls(
            quiz_id=quiz.quiz_id,
            boss_name=quiz.boss_name,
            description=quiz.description,
            class_type=quiz.class_type,
            target_sections=quiz.target_sections,
            max_hp=quiz.max_hp,
            current_hp=max(0, quiz.max_hp - aggregate_damage),
            status=quiz.status(aggregate_damage, now),
            is_active=quiz.is_active,
            deadline=isoformat_utc(quiz.deadline),
            damage_per_correct=quiz.damage_per_correct,
            boss_damage=quiz.boss_damage,
            reward_xp=quiz.reward_xp,
            reward_flux=quiz.reward_flux,
            reward_item_rarity=quiz.reward_item_rarity,
            rewards_distributed=quiz.rewards_distributed,
            defeated_at=isoformat_utc(quiz.defeated_at),
            question_count=len(quiz.questions),
            modifiers=modifiers,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ProgressDTO:
    quiz_id: int
    user_id: int
    player_hp: int
    player_max_hp: int
    knocked_out: bool
    answered_count: int
    total_damage_dealt: int
    critical_hits: int
    damage_reduced: int
    boss_damage_taken: int
    correct_by_difficulty: Dict[str, int]
    incorrect_by_difficulty: Dict[str, int]
    current_streak: int
    longest_streak: int
    shield_blocks_used: int
    healing_received: int
    questions_attempted: int
    questions_correct: int
    participated: bool
    reward_rank: Optional[int] = None
    reward_multiplier: Optional[float] = None
    reward_xp: Optional[int] = None
    reward_flux: Optional[int] = None
    reward_item_rarity: Optional[str] = None
    rewarded_at: Optional[str] = None

    @classmethod
    def from_progress(cls, progress) -> 'ProgressDTO':
        return cls(
            quiz_id=progress.quiz_id,
            user_id=progress.user_id,
            player_hp=progress.player_hp,
            player_max_hp=progress.player_max_hp,
            knocked_out=progress.knocked_out,
            answered_count=len(progress.answered_question_ids or []),
            total_damage_dealt=progress.total_damage_dealt,
            critical_hits=progress.critical_hits,
            damage_reduced=progress.damage_reduced,
            boss_damage_taken=progress.boss_damage_taken,
            correct_by_difficulty={
                'EASY': progress.correct_easy,
                'MEDIUM': progress.correct_medium,
                'HARD': progress.correct_hard,
            },
            incorrect_by_difficulty={
                'EASY': progress.incorrect_easy,
                'MEDIUM': progress.incorrect_medium,
                'HARD': progress.incorrect_hard,
            },
            current_streak=progress.current_streak,
            longest_streak=progress.longest_streak,
            shield_blocks_used=progress.shield_blocks_used,
            healing_received=progress.healing_received,
            questions_attempted=progress.questions_attempted,
            questions_correct=progress.questions_correct,
            participated=progress.participated,
            reward_rank=progress.reward_rank,
            reward_multiplier=progress.reward_multiplier,
            reward_xp=progress.reward_xp,
            reward_flux=progress.reward_flux,
            reward_item_rarity=progress.reward_item_rarity,
            rewarded_at=isoformat_utc(progress.rewarded_at),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DistributionResult:
    """What the winning reward distribution paid out."""
    quiz_id: int
    defeated_at: Optional[str]
    rewarded: List[Dict[str, Any]] = field(default_factory=list)
    non_participants: List[int] = field(default_factory=list)
    item_rarity: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------

class QuestionPayload(BaseModel):
    stem: str = Field(min_length=1)
    options: List[str] = Field(min_length=2)
    correct_index: int = Field(ge=0)
    difficulty: str = 'MEDIUM'
    damage_bonus: int = Field(default=0, ge=0)

    class Config:
        extra = "ignore"

    @field_validator('difficulty')
    @classmethod
    def validate_difficulty(cls, v):
        value = str(v or 'MEDIUM').upper()
        if value not in DIFFICULTY_CHOICES:
            raise ValueError(f"difficulty must be one of {', '.join(DIFFICULTY_CHOICES)}")
        return value

    @field_validator('correct_index')
    @classmethod
    def validate_correct_index(cls, v, info):
        options = info.data.get('options')
        if options is not None and v >= len(options):
            raise ValueError('correct_index is out of range')
        return v


class BossQuizPayload(BaseModel):
    """Admin create / full-replace payload for a boss quiz."""
    boss_name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = None
    class_type: str = 'GLOBAL'
    target_sections: Optional[List[str]] = None
    max_hp: int = Field(gt=0)
    damage_per_correct: int = Field(default=50, ge=0)
    boss_damage: Optional[int] = Field(default=None, ge=0)
    reward_xp: int = Field(default=0, ge=0)
    reward_flux: int = Field(default=0, ge=0)
    reward_item_rarity: Optional[str] = None
    modifiers: List[Dict[str, Any]] = Field(default_factory=list)
    is_active: bool = True
    deadline: datetime
    questions: List[QuestionPayload] = Field(min_length=1)

    class Config:
        extra = "ignore"

    @field_validator('reward_item_rarity')
    @classmethod
    def validate_rarity(cls, v):
        if v is None or v == '':
            return None
        value = str(v).upper()
        if value not in RARITY_CHOICES:
            raise ValueError(f"reward_item_rarity must be one of {', '.join(RARITY_CHOICES)}")
        return value

    @field_validator('modifiers')
    @classmethod
    def validate_modifiers(cls, v):
        # ModifierError is a ValueError, so pydantic reports it per field.
        return [modifier.to_dict() for modifier in parse_modifiers(v)]

    @field_validator('class_type')
    @classmethod
    def validate_class_type(cls, v):
        return (v or 'GLOBAL').strip() or 'GLOBAL'


class AnswerPayload(BaseModel):
    question_id: int
    choice_index: int = Field(ge=0)

    class Config:
        extra = "ignore"


# ---------------------------------------------------------------------------
# Output schemas
# ---------------------------------------------------------------------------

class QuestionViewSchema(Schema):
    """Question as shown to a student: the correct index never leaves the server."""
    question_id = fields.Int()
    stem = fields.String()
    options = fields.List(fields.String())
    difficulty = fields.String()
    damage_bonus = fields.Int()


class FeedEntrySchema(Schema):
    shard_id = fields.Int()
    user_id = fields.Int()
    user_name = fields.Method('get_user_name')
    damage = fields.Int()
    is_crit = fields.Boolean()
    timestamp = fields.Method('get_timestamp')

    def get_user_name(self, obj):
        return obj.user.username if obj.user else None

    def get_timestamp(self, obj):
        return isoformat_utc(obj.created_at)


class LeaderboardEntrySchema(Schema):
    rank = fields.Int()
    user_id = fields.Int()
    username = fields.String()
    total_damage = fields.Int()
    critical_hits = fields.Int()
    questions_attempted = fields.Int()
    questions_correct = fields.Int()
    participated = fields.Boolean()
    knocked_out = fields.Boolean()
    reward_multiplier = fields.Float(allow_none=True)
    reward_xp = fields.Int(allow_none=True)
    reward_flux = fields.Int(allow_none=True)
