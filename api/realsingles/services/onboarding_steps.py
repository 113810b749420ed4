"""Static onboarding wizard configuration.

Steps are linearly ordered and grouped into phases. Field keys are the
PascalCase names clients send; db columns are the profile table columns.
"""

from dataclasses import dataclass, field
from typing import Any


def _opts(*values: str) -> tuple[str, ...]:
    return tuple(values)


GENDER_OPTIONS = _opts("male", "female", "non-binary", "other")
BODY_TYPE_OPTIONS = _opts("slim", "athletic", "average", "muscular", "curvy", "plus_size")
MARITAL_STATUS_OPTIONS = _opts("never_married", "separated", "divorced", "widowed")
HAS_KIDS_OPTIONS = _opts("no", "yes_live_at_home", "yes_live_away", "yes_shared")
WANTS_KIDS_OPTIONS = _opts("yes", "no", "no_ok_if_partner_has", "not_sure")
SMOKING_OPTIONS = _opts("never", "occasionally", "daily", "trying_to_quit")
DRINKING_OPTIONS = _opts("never", "social", "moderate", "regular")
MARIJUANA_OPTIONS = _opts("never", "occasionally", "yes")
EXERCISE_OPTIONS = _opts("never", "sometimes", "regularly", "daily")
DATING_INTENTIONS_OPTIONS = _opts("long_term", "long_term_open", "short_term_open", "short_term", "figuring_out")
EDUCATION_OPTIONS = _opts("high_school", "trade_school", "some_college", "associate", "bachelor", "graduate", "phd")
ETHNICITY_OPTIONS = _opts(
    "white", "latino", "black", "asian", "native_american", "east_indian",
    "pacific_islander", "middle_eastern", "armenian", "mixed", "other", "prefer_not_to_say",
)
RELIGION_OPTIONS = _opts(
    "adventist", "agnostic", "atheist", "buddhist", "christian_catholic", "christian_lds",
    "christian_protestant", "christian_orthodox", "hindu", "jewish", "muslim", "spiritual",
    "other", "prefer_not_to_say",
)
POLITICAL_OPTIONS = _opts("not_political", "undecided", "conservative", "liberal", "libertarian", "moderate")
ZODIAC_OPTIONS = _opts(
    "aries", "taurus", "gemini", "cancer", "leo", "virgo",
    "libra", "scorpio", "sagittarius", "capricorn", "aquarius", "pisces",
)
COUNTRY_OPTIONS = _opts("US", "CA", "GB", "AU", "DE", "FR", "IT", "ES", "NL", "CH", "SE", "NO", "DK", "IE", "NZ")
PETS_OPTIONS = _opts("dog", "cat", "fish", "other", "dont_have_but_love", "pet_free", "allergic")
LANGUAGE_OPTIONS = _opts(
    "english", "spanish", "french", "german", "italian", "portuguese", "chinese", "japanese",
    "korean", "arabic", "armenian", "dutch", "hebrew", "hindi", "norwegian", "russian",
    "swedish", "tagalog", "turkish", "urdu", "other",
)
INTEREST_OPTIONS = _opts(
    "dining_out", "sports", "museums_art", "music", "gardening", "basketball", "dancing",
    "travel", "movies", "reading", "fitness", "cooking", "photography", "gaming", "hiking",
    "yoga", "wine", "coffee", "dogs", "cats", "fashion", "technology", "nature", "beach",
    "mountains", "running", "cycling", "concerts", "theater", "volunteering",
)

MIN_HEIGHT_INCHES = 48
MAX_HEIGHT_INCHES = 96

MEDIA_COLUMNS = {"profile_image_url", "verification_selfie_url"}


@dataclass(frozen=True)
class StepField:
    key: str
    db_column: str
    label: str
    input_type: str
    options: tuple[str, ...] = ()
    required: bool = False
    sensitive: bool = False
    max_length: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "db_column": self.db_column,
            "label": self.label,
            "input_type": self.input_type,
            "options": list(self.options),
            "required": self.required,
            "sensitive": self.sensitive,
            "max_length": self.max_length,
        }


@dataclass(frozen=True)
class OnboardingStep:
    id: str
    step_number: int
    title: str
    phase: str
    fields: tuple[StepField, ...] = field(default_factory=tuple)
    subtitle: str | None = None
    is_required: bool = False
    allow_skip: bool = True
    allow_prefer_not: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "step_number": self.step_number,
            "title": self.title,
            "subtitle": self.subtitle,
            "phase": self.phase,
            "fields": [f.to_dict() for f in self.fields],
            "is_required": self.is_required,
            "allow_skip": self.allow_skip,
            "allow_prefer_not": self.allow_prefer_not,
        }


def _required(step_id: str, number: int, title: str, subtitle: str | None, *fields: StepField) -> OnboardingStep:
    return OnboardingStep(
        id=step_id,
        step_number=number,
        title=title,
        subtitle=subtitle,
        phase="required",
        fields=fields,
        is_required=True,
        allow_skip=False,
    )


def _optional(step_id: str, number: int, phase: str, title: str, subtitle: str | None, *fields: StepField) -> OnboardingStep:
    return OnboardingStep(id=step_id, step_number=number, title=title, subtitle=subtitle, phase=phase, fields=fields)


def _prompt(step_id: str, number: int, title: str, key: str, column: str, label: str, subtitle: str | None = None) -> OnboardingStep:
    return _optional(step_id, number, "prompts", title, subtitle, StepField(key, column, label, "textarea", max_length=500))


ONBOARDING_STEPS: tuple[OnboardingStep, ...] = (
    _required(
        "name", 1, "What should we call you?", "This is how other members will see you",
        StepField("DisplayName", "display_name", "Display Name", "text", required=True, max_length=50),
    ),
    _required(
        "birthday", 2, "When's your birthday?", "We'll show your age, not your birthday",
        StepField("DateOfBirth", "date_of_birth", "Date of Birth", "date", required=True),
    ),
    _required(
        "gender", 3, "What's your gender?", None,
        StepField("Gender", "gender", "Gender", "select", GENDER_OPTIONS, required=True),
    ),
    _required(
        "interested-in", 4, "Who are you interested in?", "Select all that apply",
        StepField("LookingFor", "looking_for", "Interested In", "multi-select", GENDER_OPTIONS, required=True),
    ),
    _required(
        "photos", 5, "Add your photos", "Show your best self, at least 1 photo required",
        StepField("ProfileImageUrl", "profile_image_url", "Photos", "photo-upload", required=True),
    ),
    OnboardingStep(
        id="verification-selfie",
        step_number=6,
        title="Verify it's you",
        subtitle="Take a quick selfie to get verified",
        phase="required",
        fields=(StepField("VerificationSelfieUrl", "verification_selfie_url", "Verification Selfie", "camera-capture"),),
    ),
    _optional(
        "bio", 7, "about", "Tell us about yourself", "Write a short bio",
        StepField("Bio", "bio", "About Me", "textarea", max_length=1000),
    ),
    _optional(
        "looking-for-description", 8, "about", "Describe your ideal match", "What are you looking for in a partner?",
        StepField("LookingForDescription", "looking_for_description", "What I'm Looking For", "textarea", max_length=500),
    ),
    _optional(
        "physical", 9, "physical", "Physical attributes", None,
        StepField("HeightInches", "height_inches", "Height", "select"),
        StepField("BodyType", "body_type", "Body Type", "select", BODY_TYPE_OPTIONS),
    ),
    _optional(
        "ethnicity", 10, "physical", "What's your ethnicity?", "Select all that apply",
        StepField("Ethnicity", "ethnicity", "Ethnicity", "multi-select", ETHNICITY_OPTIONS, sensitive=True),
    ),
    _optional(
        "marital-status", 11, "relationship", "What's your marital status?", None,
        StepField("MaritalStatus", "marital_status", "Marital Status", "select", MARITAL_STATUS_OPTIONS, sensitive=True),
    ),
    _optional(
        "dating-intentions", 12, "relationship", "What are you looking for?", "What kind of relationship interests you?",
        StepField("DatingIntentions", "dating_intentions", "Dating Intentions", "select", DATING_INTENTIONS_OPTIONS),
    ),
    _optional(
        "location", 13, "location", "Where do you live?", None,
        StepField("Country", "country", "Country", "select", COUNTRY_OPTIONS),
        StepField("City", "city", "City", "text", max_length=100),
        StepField("ZipCode", "zip_code", "Zip / Postal Code", "text", max_length=20),
    ),
    _optional(
        "work", 14, "lifestyle", "What do you do?", None,
        StepField("Occupation", "occupation", "Occupation", "text", max_length=100),
        StepField("Company", "company", "Company", "text", max_length=100),
    ),
    _optional(
        "education", 15, "lifestyle", "What's your education?", None,
        StepField("Education", "education", "Education Level", "select", EDUCATION_OPTIONS),
    ),
    _optional(
        "religion", 16, "lifestyle", "What's your religion?", None,
        StepField("Religion", "religion", "Religion", "select", RELIGION_OPTIONS, sensitive=True),
    ),
    _optional(
        "political-views", 17, "lifestyle", "What are your political views?", None,
        StepField("PoliticalViews", "political_views", "Political Views", "select", POLITICAL_OPTIONS, sensitive=True),
    ),
    _optional(
        "exercise", 18, "lifestyle", "How often do you exercise?", None,
        StepField("Exercise", "exercise", "Exercise", "select", EXERCISE_OPTIONS),
    ),
    _optional(
        "languages", 19, "lifestyle", "What languages do you speak?", "Select all that apply",
        StepField("Languages", "languages", "Languages", "multi-select", LANGUAGE_OPTIONS),
    ),
    _optional(
        "habits", 20, "habits", "Your habits", None,
        StepField("Smoking", "smoking", "Smoking", "select", SMOKING_OPTIONS, sensitive=True),
        StepField("Drinking", "drinking", "Drinking", "select", DRINKING_OPTIONS, sensitive=True),
        StepField("Marijuana", "marijuana", "Marijuana", "select", MARIJUANA_OPTIONS, sensitive=True),
    ),
    _optional(
        "has-kids", 21, "family", "Do you have children?", None,
        StepField("HasKids", "has_kids", "Do you have children?", "select", HAS_KIDS_OPTIONS, sensitive=True),
    ),
    _optional(
        "wants-kids", 22, "family", "Do you want children?", None,
        StepField("WantsKids", "wants_kids", "Do you want children?", "select", WANTS_KIDS_OPTIONS, sensitive=True),
    ),
    _optional(
        "pets", 23, "family", "Do you have pets?", "Select all that apply",
        StepField("Pets", "pets", "Pets", "multi-select", PETS_OPTIONS),
    ),
    _optional(
        "interests", 24, "personality", "What are your interests?", "Select what you enjoy",
        StepField("Interests", "interests", "Interests", "multi-select", INTEREST_OPTIONS),
    ),
    _optional(
        "life-goals", 25, "personality", "What are your life goals?", "Select up to 10",
        StepField("LifeGoals", "life_goals", "Life Goals", "multi-select"),
    ),
    _prompt("prompt-ideal-date", 26, "My ideal first date...", "IdealFirstDate", "ideal_first_date", "Ideal First Date", "...starts with and ends with"),
    _prompt("prompt-non-negotiables", 27, "My top non-negotiables", "NonNegotiables", "non_negotiables", "Non-Negotiables"),
    _prompt("prompt-way-to-heart", 28, "The way to my heart is through...", "WayToHeart", "way_to_heart", "Way to My Heart"),
    _prompt("prompt-after-work", 29, "After work, you can find me...", "AfterWork", "after_work", "After Work"),
    _optional(
        "prompt-nightclub-or-home", 30, "prompts", "Nightclub or night at home?", None,
        StepField("NightclubOrHome", "nightclub_or_home", "Nightclub or Home", "text", max_length=200),
    ),
    _prompt("prompt-pet-peeves", 31, "My pet peeves", "PetPeeves", "pet_peeves", "Pet Peeves"),
    _prompt("prompt-travel-story", 32, "My craziest travel story", "CraziestTravelStory", "craziest_travel_story", "Craziest Travel Story"),
    _prompt("prompt-weirdest-gift", 33, "The weirdest gift I've received", "WeirdestGift", "weirdest_gift", "Weirdest Gift"),
    _prompt("prompt-worst-job", 34, "The worst job I ever had", "WorstJob", "worst_job", "Worst Job"),
    _prompt("prompt-dream-job", 35, "The job I'd do for free", "DreamJob", "dream_job", "Dream Job"),
    _optional(
        "social-links", 36, "social", "Connect your socials", "Optional, helps verify you're real",
        StepField("SocialLink1", "social_link_1", "Social Link 1", "url", max_length=255),
        StepField("SocialLink2", "social_link_2", "Social Link 2", "url", max_length=255),
    ),
    OnboardingStep(
        id="complete",
        step_number=37,
        title="You're all set!",
        subtitle="Your profile is ready",
        phase="complete",
        allow_skip=False,
    ),
)

TOTAL_STEPS = len(ONBOARDING_STEPS)
FINAL_STEP = ONBOARDING_STEPS[-1]
PHOTOS_STEP_ID = "photos"
SELFIE_STEP_ID = "verification-selfie"

PHASE_LABELS: dict[str, str] = {
    "required": "Getting Started",
    "physical": "Physical",
    "relationship": "Relationship",
    "location": "Location",
    "lifestyle": "Lifestyle",
    "habits": "Habits",
    "family": "Family",
    "personality": "Personality",
    "about": "About You",
    "prompts": "Prompts",
    "social": "Social",
    "complete": "Complete",
}

_STEPS_BY_ID = {s.id: s for s in ONBOARDING_STEPS}
_STEPS_BY_NUMBER = {s.step_number: s for s in ONBOARDING_STEPS}


def get_step_by_id(step_id: str) -> OnboardingStep | None:
    return _STEPS_BY_ID.get(step_id)


def get_step_by_number(number: int) -> OnboardingStep | None:
    return _STEPS_BY_NUMBER.get(number)


def all_fields() -> list[StepField]:
    return [f for step in ONBOARDING_STEPS for f in step.fields]


def get_field(name: str) -> StepField | None:
    """Look a field up by API key or db column."""
    for f in all_fields():
        if f.key == name or f.db_column == name:
            return f
    return None


def step_for_field(name: str) -> OnboardingStep | None:
    for step in ONBOARDING_STEPS:
        if any(f.key == name or f.db_column == name for f in step.fields):
            return step
    return None


def completion_columns() -> list[str]:
    return [f.db_column for f in all_fields() if f.db_column not in MEDIA_COLUMNS]


def phases() -> list[dict[str, Any]]:
    grouped: dict[str, list[OnboardingStep]] = {}
    for step in ONBOARDING_STEPS:
        grouped.setdefault(step.phase, []).append(step)
    return [
        {"phase": phase, "label": PHASE_LABELS.get(phase, phase), "steps": [s.id for s in steps]}
        for phase, steps in grouped.items()
    ]


def steps_payload() -> dict[str, Any]:
    return {
        "steps": [s.to_dict() for s in ONBOARDING_STEPS],
        "total_steps": TOTAL_STEPS,
        "phases": phases(),
        "phase_labels": dict(PHASE_LABELS),
    }
