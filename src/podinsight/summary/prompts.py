"""
Prompt Templates

System and user prompts for the single-pass tiers, the insights extractor
and the three synthesis agents. Templates use str.format, so literal JSON
braces are doubled.
"""

JSON_ONLY_SYSTEM = """You are an expert podcast analyst.
Respond ONLY with valid JSON. No markdown, no explanations.
IMPORTANT: Write in the SAME LANGUAGE as the transcript."""

QUICK_PROMPT = """Analyze this podcast transcript and return a JSON object with this exact structure:

{{
  "tldr": "2 sentences maximum summarizing the main point",
  "key_takeaways": ["takeaway 1", "takeaway 2"],
  "who_is_this_for": "1 sentence describing the ideal listener",
  "topics": ["topic1", "topic2", "topic3"]
}}

Rules:
- 5-7 key takeaways, actionable and specific
- 3-5 topics, 1-2 words each
- No markdown in the JSON values
- If unsure about something, omit it rather than guess

Transcript:
{transcript}"""

DEEP_PROMPT = """Analyze this podcast transcript thoroughly and return a JSON object with this exact structure:

{{
  "tldr": "2 sentences maximum summarizing the main point",
  "sections": [
    {{
      "title": "Section title describing the topic",
      "summary": "2-4 sentences summarizing this section",
      "key_points": ["point 1", "point 2"]
    }}
  ],
  "resources": [
    {{
      "type": "repo|link|tool|person|paper|other",
      "label": "Human readable name",
      "url": "https://... (only if actually mentioned, otherwise omit)",
      "notes": "Optional context"
    }}
  ],
  "action_prompts": [
    {{
      "title": "Action title",
      "details": "Concrete next step with clear instructions"
    }}
  ],
  "topics": ["topic1", "topic2"]
}}

Rules:
- Create 3-6 logical sections based on the content flow
- Only include resources that were actually mentioned
- If a URL wasn't explicitly stated, omit the url field
- Action prompts should be practical things the listener can do
- No markdown in any JSON values

Transcript:
{transcript}"""

INSIGHTS_PROMPT = """Analyze this podcast transcript and generate insights as a JSON object with this exact structure:

{{
  "keywords": [
    {{"word": "keyword or short phrase", "frequency": 5, "relevance": "high"}}
  ],
  "highlights": [
    {{
      "quote": "Exact or near-exact quote that captures a key moment",
      "timestamp": "12:34",
      "context": "Why this quote matters",
      "importance": "critical"
    }}
  ],
  "shownotes": [
    {{
      "timestamp": "00:00",
      "title": "Chapter title",
      "content": "What is covered in this section",
      "links": [{{"label": "Name", "url": "https://..."}}]
    }}
  ],
  "mindmap": {{
    "id": "root",
    "label": "Episode main topic",
    "children": [
      {{"id": "topic1", "label": "Subtopic 1", "children": [{{"id": "topic1.1", "label": "Detail 1"}}]}}
    ]
  }}
}}

Rules:
- Keywords: 15-25 most important terms. Relevance: "high", "medium" or "low". Frequency is a rough estimate.
- Highlights: 8-12 key quotes. Importance: "critical", "important" or "notable".
- Shownotes: 5-8 chapters covering the episode flow.
- Mindmap: 2-3 level hierarchy, max 15 nodes. The root label is the episode's main theme.
- Only include timestamps if clearly identifiable in the transcript.
- Only include links if explicitly mentioned with full URLs.
- Extract only what is in the transcript. Keep quotes to 1-3 sentences.

Transcript:
{transcript}"""

# --- Multi-agent synthesis ---

ANALYST_SYSTEM = """You are an expert podcast analyst. Your job is to:
1. Identify speakers from conversation patterns (introductions, greetings, name references)
2. Divide the episode into topic blocks wherever the subject matter changes
3. Label each block with a descriptive title

Respond ONLY with valid JSON. No markdown, no explanations."""

ANALYST_PROMPT = """Analyze this diarized podcast transcript sample and return a JSON object:

{{
  "speakers": [
    {{"id": 0, "name": "John Smith", "role": "host"}},
    {{"id": 1, "name": "Sarah Johnson", "role": "guest"}}
  ],
  "topicBlocks": [
    {{
      "id": "block-1",
      "label": "Introduction and Welcome",
      "startMinute": 0.0,
      "endMinute": 6.5,
      "primarySpeaker": 0
    }}
  ]
}}

Episode: {title}
Duration: {duration_minutes:.1f} minutes
Utterances: {utterance_count} (sample below shows {sample_count})
Distinct speakers: {speaker_count}

RULES:
- Speakers: use real names if mentioned ("Hi John", "I'm Sarah"); otherwise "Host", "Guest 1", "Guest 2"
- Role is "host" for the person who guides the conversation, "guest" for interviewees, "unknown" otherwise
- Create {min_blocks}-{max_blocks} blocks that together cover the whole episode, in order
- startMinute/endMinute are minutes from the start of the episode
- primarySpeaker is the speaker id who talks most in that block
- Labels should be descriptive: "Discussion: AI in Healthcare", "Personal Story: Career Journey"
- IMPORTANT: Respond in the SAME LANGUAGE as the transcript

Transcript sample (format: [mm:ss] Speaker N: text):
{transcript}"""

WRITER_SYSTEM = """You are an expert content summarizer. Create a detailed summary of one topic block from a podcast, with speaker attribution.

Respond ONLY with valid JSON. No markdown, no explanations."""

WRITER_PROMPT = """Summarize this topic block from a podcast transcript.

Speaker mapping:
{speakers}

Topic block: "{label}"
Time range: {start} - {end}

Return a JSON object:
{{
  "summary": "2-4 sentences. Use speaker names, e.g. 'John (host) explained that...'",
  "key_points": ["point 1", "point 2", "point 3"],
  "speaker_contributions": [
    {{"speaker": "John (host)", "contribution": "What this speaker contributed"}}
  ]
}}

RULES:
- Key points should be specific, not generic
- Each speaker who talked significantly gets a contribution entry
- IMPORTANT: Write in the SAME LANGUAGE as the transcript

Transcript:
{transcript}"""

EDITOR_SYSTEM = """You are an expert content editor. Synthesize topic block summaries into one cohesive summary of the entire podcast episode.

Respond ONLY with valid JSON. No markdown, no explanations."""

EDITOR_PROMPT = """Synthesize these topic block summaries into a final episode summary.

Speakers in this episode:
{speakers}

Block summaries:
{blocks}

Return a JSON object:
{{
  "tldr": "2-3 sentences capturing the essence of the entire episode",
  "sections": [
    {{
      "title": "Section title",
      "summary": "2-3 sentences with speaker attribution",
      "key_points": ["point 1", "point 2"],
      "speakers": ["John (host)", "Sarah (guest)"]
    }}
  ],
  "key_takeaways": ["5-7 most important insights"],
  "action_items": ["2-4 concrete actions listeners can take"],
  "topics": ["topic1", "topic2", "topic3"]
}}

RULES:
- Sections follow the natural flow of the episode; merge or split blocks as needed
- Blocks marked [EMPTY] had no captured discussion; do not invent content for them
- topics are 3-5 key themes, 1-3 words each
- IMPORTANT: Write in the SAME LANGUAGE as the source content"""


ASK_SYSTEM = """You are an AI assistant that answers questions about a podcast episode.
Rules:
- Answer ONLY based on the episode content provided below. If the answer isn't in the content, say so.
- Match the language of the user's question in your response.
- Use markdown formatting (bold, lists, blockquotes) for readability.
- When quoting the transcript, use blockquotes (>).
- Be concise but thorough.

{context}"""

ASK_PROMPT = """{history}Question: {question}"""
