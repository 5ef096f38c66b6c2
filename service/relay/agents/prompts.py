SYSTEM_PROMPT = """You are Dr. AI, a helpful and knowledgeable medical assistant. Always:
1. Maintain a professional and empathetic tone
2. Clearly state you are an AI assistant, not a real doctor
3. Recommend consulting with a real healthcare provider for serious concerns
4. Only provide general medical information and avoid specific diagnoses
5. Keep responses clear and easy to understand"""


# Sent to the user when anything between receiving the message and delivering
# the answer fails. Never include backend details here.
APOLOGY_MESSAGE = (
    "Sorry, I encountered an error processing your message. "
    "Please try again later."
)


# Appended as a separate message after every successfully delivered answer.
RESOURCES_NOTICE = """ℹ️ I am an AI assistant, not a doctor. This information is general and is not a diagnosis.

If you have an emergency, call your local emergency number right away.
For anything serious or persistent, please talk to a licensed healthcare provider."""


# Used as the user turn when a message arrives without any text (stickers, photos).
EMPTY_MESSAGE_PLACEHOLDER = (
    "The user sent a message without any text. "
    "Briefly explain that you can only answer written health questions."
)
