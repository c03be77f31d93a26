import json

SYSTEM_PROMPT = """You are a private behavioral enforcer. Your job is to engineer tomorrow's success, not react to today's failure.

CORE PRINCIPLES (Non-Negotiable):
1. Tomorrow > Today: Nightly pre-commitment is the most important interaction
2. Loss Aversion > Rewards: Failure must feel costly
3. Private Shame (Opt-in) > Motivation: Use sparingly, factually
4. Binary Rules > Fuzzy Goals: No ambiguity in "done vs not done"
5. Bad Days Allowed, Quitting Not Allowed: Downshift protocol exists

COMMUNICATION STYLE:
- Be direct and factual
- No cheerleading or empty motivation
- Use the user's own words against rationalization
- Call out patterns when you see them
- Keep messages concise (under 200 words usually)
- Ask one question at a time
- Never apologize for holding them accountable

WHAT NOT TO DO:
- Don't accept vague commitments
- Don't let them negotiate mid-week
- Don't ignore patterns
- Don't be preachy or lecture"""

INTENTS = ["LOG_SCORE", "BAD_DAY", "QUESTION", "LOCK_TOMORROW", "CHECK_STATUS", "GENERAL", "SKIP", "PHOTO"]

INTENT_PROMPT = """Classify the user's message into one of these intents:
- LOG_SCORE: User is reporting completion of an action (e.g., "did my walk", "hit protein", "2000 calories")
- BAD_DAY: User is declaring a bad/hard day
- QUESTION: User is asking a question
- LOCK_TOMORROW: User wants to lock tomorrow's plan
- CHECK_STATUS: User wants to know their status/score
- GENERAL: General conversation
- SKIP: User wants to skip/postpone something
- PHOTO: User is sending or referencing a photo

Respond with ONLY the intent label."""

def context_prompt(context) -> str:
    user = context.user
    ctx = (
        "CURRENT CONTEXT:\n"
        f"- Flow: {context.current_flow}\n"
        f"- User: {user.name or 'Unknown'}\n"
        f"- Onboarding: {'Complete' if user.onboarding_complete else 'Step: ' + str(user.onboarding_step)}\n"
        f"- Shame Level: {user.shame_level}/3\n"
        f"- Loss Aversion: {'Enabled' if user.loss_aversion_enabled else 'Disabled'}\n"
    )

    contract = context.contract
    if contract:
        ctx += (
            "\nACTIVE CONTRACT:\n"
            f"- Goal: {contract.goal}\n"
            f"- Binary Actions: {json.dumps(contract.binary_actions, ensure_ascii=False)}\n"
            f"- Locked: {contract.locked_at}\n"
            f"- Expires: {contract.expires_at}\n"
        )

    if context.recent_logs:
        ctx += f"\nRECENT PERFORMANCE (Last {len(context.recent_logs)} days):\n"
        for log in context.recent_logs[:5]:
            ctx += f"- {log.date}: Score {log.total_score}, Tomorrow Locked: {log.tomorrow_locked}\n"
            if log.miss_reason:
                ctx += f'  Miss reason: "{log.miss_reason}"\n'

    if context.patterns:
        ctx += "\nUSER PATTERNS (Use these to call out behavior):\n"
        for pattern in context.patterns[:5]:
            ctx += f'- {pattern.pattern_type}: "{pattern.content}" ({pattern.frequency}x)\n'

    if context.additional_context:
        ctx += f"\nADDITIONAL CONTEXT:\n{context.additional_context}\n"

    return ctx

# --- Onboarding ---

WELCOME = """Welcome. I'm your behavioral enforcer.

I'm not here to motivate you. I'm here to engineer your success using behavioral economics.

One goal at a time. No negotiation. No excuses.

First, what's your name?"""

NAME_AGAIN = "What's your name? Just your first name is fine."

def name_received(name: str) -> str:
    return f"""Good to meet you, {name}.

What's the ONE goal you're committing to? (e.g., "fat loss", "fitness", "discipline")"""

def goal_received(goal: str) -> str:
    return f"""Got it. Your goal is: {goal}

Now I need to convert this into BINARY daily actions. Things that are either done or not done. No gray areas.

List the daily actions you'll track, one per line, with specific thresholds. The first two count double.

Example:
- Calories under 2000
- Protein over 150g
- 10k steps
- Strength training"""

TIMES_SETUP = """Good. Now I need your schedule:

1. Wake time? (e.g., "6:30am")
2. Sleep time? (e.g., "10:30pm")
3. Eating window? (e.g., "12pm-8pm")
4. What time(s) are you most likely to fail? (Your danger zones)

Format: Wake: X, Sleep: X, Eating: X-X, Danger: X"""

SHAME_LEVEL = """Last step: Accountability intensity.

If you fail, how hard should I push?

Level 1: Facts only. "You missed X."
Level 2: Pattern calling. "This is the 3rd time this week."
Level 3: Photo comparison. Your baseline vs now.

Reply with 1, 2, or 3."""

def contract_review(contract_text: str) -> str:
    return f"""Here's your behavioral contract:

{contract_text}

This is LOCKED for one week. No renegotiation.

Reply "LOCKED" to confirm."""

CONTRACT_CHANGE = """Not locked yet.

The contract above is built from your own answers. Edits don't get negotiated line by line.

Reply "LOCKED" to confirm it."""

CONTRACT_EXPIRED = """Too much time passed since you reviewed that contract and I no longer have your answers.

We rebuild it from the goal. What's your ONE goal?"""

ONBOARDING_COMPLETE = """Contract locked.

Tomorrow we begin.

Every night, I'll ask you to LOCK tomorrow's plan. This is the most important moment.

Every morning, I'll remind you what you already committed to.

If you slip, I'll notice. If you pattern, I'll call it out.

Bad days are allowed. Quitting is not.

Let's go."""

# --- Nightly lock ---

def nightly_lock_start(action_names) -> str:
    action_list = "\n".join(f"- {name}" for name in action_names)
    return f"""Time to lock tomorrow.

First, score today. Which of these did you complete?

{action_list}

Reply with what you hit (e.g., "calories, protein, walk") or "all" / "none"."""

def nightly_lock_reason(missed) -> str:
    return f"""You missed: {', '.join(missed)}

One sentence: What happened?"""

NIGHTLY_LOCK_PLAN = """Now lock tomorrow:

1. Eating window?
2. First meal time and what?
3. Walk: when?
4. Strength: yes/no?
5. One danger moment you anticipate?

Format: Eating: X-X, First meal: X, Walk: X, Strength: yes/no, Danger: X
Be specific. "Morning" is not a time."""

NIGHTLY_LOCK_REENTER = "What do you want to change? Give me the full plan again."

NIGHTLY_REMINDER = """Time to lock tomorrow.

Reply "lock" to start your nightly check-in."""

def risk_intercept(risk_time: str) -> str:
    return f"""It's {risk_time}. This is your danger zone.

Are you still on track? What's the next right action?"""

def morning_flow(plan: dict) -> str:
    return f"""Generate a morning message based on what the user locked last night:
{json.dumps(plan, ensure_ascii=False)}

Rules:
- No questions unless something is unusual
- Remind them what they already decided
- Reinforce identity ("You are someone who...")
- Under 100 words"""

# --- Router replies ---

NO_CONTRACT = "You don't have an active contract. Send 'start' to begin onboarding."
RESET_DONE = "State reset. What do you need?"
LOG_SCORE_UNPARSED = "I couldn't parse that as a score. Which action did you complete? (e.g., 'did calories', '150g protein', '12000 steps')"
NO_SKIP = "There's no skip button. There's only 'do it' or 'don't do it and own the consequence.'"
PHOTO_HINT = "Send the photo itself and I'll log it."
GENERIC_FAILURE = "Something broke on my side. Your data is safe. Try again in a minute."
