"""Prompt templates for the event memory."""

SYSTEM_PROMPT = (
    "You are Argus, a proactive memory assistant. You read chat messages, "
    "keep track of the events, tasks and intentions they mention, and answer "
    "strictly in the JSON format you are asked for."
)

DETECT_ACTION_PROMPT = """Decide whether the NEW MESSAGE asks to act on one of the user's existing events.

Actions:
- cancel / delete: the event is off ("cancel it", "not going anymore")
- complete: it is done ("done", "paid it", "bought it")
- ignore: stop reminding ("don't remind me about that")
- snooze / postpone: remind later ("later", "remind me tomorrow")
- modify: change time, title, place or details ("move it to 5pm")
- none: anything else, including messages that describe NEW events

Return ONLY valid JSON:
{{
  "isAction": true|false,
  "action": "cancel|delete|complete|ignore|snooze|postpone|modify|none",
  "confidence": 0.0-1.0,
  "targetDescription": "<which event, in words>",
  "targetKeywords": ["<lowercase keywords identifying the event>"],
  "snoozeMinutes": <minutes or null>,
  "newTime": "<ISO 8601 or null>",
  "newTitle": "<or null>",
  "newLocation": "<or null>",
  "newDescription": "<or null>"
}}

Message sent at: {timestamp}

Active events (#id TYPE "title" | time | place | kw | from):
{events}

Recent conversation:
{context}

NEW MESSAGE:
{message}
"""

EXTRACT_EVENTS_PROMPT = """Extract events, tasks, plans, subscriptions and recommendations from the NEW MESSAGE.

Current time: {now}
Message sent at: {timestamp}

Return ONLY valid JSON:
{{
  "events": [
    {{
      "type": "meeting|deadline|reminder|travel|task|subscription|recommendation|other",
      "title": "<short title>",
      "description": "<details or null>",
      "event_time": "<ISO 8601 or null>",
      "location": "<place or service, or null>",
      "participants": ["<names>"],
      "keywords": ["<lowercase keywords>"],
      "confidence": 0.0-1.0,
      "event_action": "create|update|merge",
      "target_event_id": <id of the existing event for update/merge, or null>
    }}
  ]
}}

Rules:
- Resolve relative dates ("tomorrow", "next friday") against the message time.
- Use "update" when the message changes an existing event, "merge" when it
  adds details to one; otherwise "create".
- If nothing worth remembering, return {{"events": []}}.

Existing events (#ID|TYPE|STATUS|"Title"|time|location|sender|keywords):
{events}

Recent conversation:
{context}

NEW MESSAGE:
{message}
"""

VALIDATE_RELEVANCE_PROMPT = """The user is browsing this page:
URL: {url}
Title: {title}

Which of these remembered events is worth reminding them about right now?

{candidates}

Return ONLY valid JSON:
{{"relevant": [<indexes from the list above>], "confidence": 0.0-1.0}}
"""

ANSWER_PROMPT = """Answer the user's question using their stored events.

Events (#ID|TYPE|STATUS|"Title"|time|location|sender|keywords):
{events}

{memory}
Question: {question}
"""
