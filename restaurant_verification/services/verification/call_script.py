# restaurant_verification/services/verification/call_script.py
"""Voice and SMS scripts delivered to the restaurant's listed number."""
from twilio.twiml.voice_response import VoiceResponse

VOICE = "Polly.Joanna"
LANGUAGE = "en-US"
DIGIT_PAUSE = "600ms"
DEFAULT_RESTAURANT = "your restaurant"


def build_voice_script(code: str, restaurant_name: str, platform_name: str) -> str:
    """
    Render the verification call as TwiML.

    Order: automated-caller disclosure, restaurant name, hang-up notice, the
    code grouped as "ddd, ddd", the code digit by digit with pauses, expiry and
    attempt policy, goodbye. Speech only: no Gather, Dial or Redirect.
    """
    digits = list(code)
    grouped = f"{' '.join(digits[:3])}, {' '.join(digits[3:])}"
    name = restaurant_name or DEFAULT_RESTAURANT

    response = VoiceResponse()
    response.say(
        f"This is an automated call from {platform_name} to verify a restaurant registration for {name}. "
        "If you did not request this verification, you may hang up now. No further action is needed.",
        voice=VOICE,
        language=LANGUAGE,
    )
    response.pause(length=2)
    response.say("Your 6-digit verification code is:", voice=VOICE, language=LANGUAGE)
    response.pause(length=1)
    grouped_say = response.say(voice=VOICE, language=LANGUAGE)
    grouped_say.prosody(grouped, rate="slow")
    response.pause(length=2)
    response.say("I will now repeat the code, one digit at a time:", voice=VOICE, language=LANGUAGE)
    response.pause(length=1)
    digit_say = response.say(voice=VOICE, language=LANGUAGE)
    for index, digit in enumerate(digits):
        if index:
            digit_say.break_(time=DIGIT_PAUSE)
        digit_say.prosody(digit, rate="x-slow")
    response.pause(length=2)
    response.say(
        f"Please enter this code on the {platform_name} registration page within 5 minutes. "
        "This code will expire after 5 minutes or 5 incorrect attempts. "
        "Thank you, and goodbye.",
        voice=VOICE,
        language=LANGUAGE,
    )
    return response.to_xml()


def build_sms_body(code: str, restaurant_name: str, platform_name: str) -> str:
    name = restaurant_name or DEFAULT_RESTAURANT
    return (
        f"{platform_name} verification for {name}: Your code is {code}. "
        "Expires in 5 minutes. If you did not request this, please disregard this message."
    )
